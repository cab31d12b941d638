"""
Command-line entry point for block-data-fetcher.

How to run:
    From project root (with .env configured):
        python -m block_fetcher.cli                      # latest-30 .. latest-20
        python -m block_fetcher.cli -s 250000000 -n 100
        python -m block_fetcher.cli -s 250000000 -e 250000099 -b 20
        python -m block_fetcher.cli --continuous --interval 10

Env vars (see block_fetcher.config): SOLANA_RPC_URL / HELIUS_RPC_URL /
HELIUS_API_KEY, DATABASE_URL, BATCH_SIZE, MAX_RETRIES, RETRY_DELAY_SEC,
POLL_INTERVAL_SEC, LOG_LEVEL, LOG_FORMAT.

Exit codes: 0 run finished (failed slots are listed in the report),
2 configuration error, 130 interrupted before the pipeline started.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Sequence

from block_fetcher.config import Settings, get_settings
from block_fetcher.config.env import mask_url
from block_fetcher.core.exceptions import ConfigurationError
from block_fetcher.database import BatchLoader, Database, init_db, load_program_registry
from block_fetcher.etl import BlockTransformer, InstructionClassifier, TransactionClassifier
from block_fetcher.etl_logging import LOG_FORMATS, configure_structlog, get_logger
from block_fetcher.pipeline import Pipeline, PipelineConfig, PipelineStats, format_number
from block_fetcher.rpc import SolanaRpcClient

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="block-data-fetcher",
        description="Extract, classify and load Solana blocks into PostgreSQL or SQLite.",
    )
    parser.add_argument("-s", "--start-slot", type=int, default=None, metavar="SLOT",
                        help="First slot (default: latest - 30)")
    span = parser.add_mutually_exclusive_group()
    span.add_argument("-e", "--end-slot", type=int, default=None, metavar="SLOT",
                      help="Last slot, inclusive (default: latest - 20)")
    span.add_argument("-n", "--num-blocks", type=int, default=None, metavar="COUNT",
                      help="Number of slots from the start slot (alternative to --end-slot)")
    parser.add_argument("-r", "--rpc-url", default=None, metavar="URL",
                        help="RPC endpoint (overrides SOLANA_RPC_URL / HELIUS_RPC_URL)")
    parser.add_argument("-d", "--database-url", default=None, metavar="URL",
                        help="SQLAlchemy database URL (overrides DATABASE_URL)")
    parser.add_argument("-b", "--batch-size", type=int, default=None, metavar="SIZE",
                        help="Blocks per atomic commit (default: 10)")
    parser.add_argument("--max-retries", type=int, default=None, metavar="COUNT",
                        help="Attempts per block fetch and per batch commit (default: 3)")
    parser.add_argument("--retry-delay", type=float, default=None, metavar="SECONDS",
                        help="Base backoff delay, doubled per attempt (default: 2)")
    parser.add_argument("-c", "--continuous", action="store_true",
                        help="Keep following the chain tip until interrupted")
    parser.add_argument("--interval", type=float, default=None, metavar="SECONDS",
                        help="Seconds between tip polls in continuous mode (default: 10)")
    parser.add_argument("--log-format", choices=LOG_FORMATS, default=None,
                        help="Log renderer (default: LOG_FORMAT env or json)")
    return parser


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def config_from_args(args: argparse.Namespace, settings: Settings) -> PipelineConfig:
    """Fold CLI arguments over settings into a validated PipelineConfig."""
    config = PipelineConfig(
        start_slot=args.start_slot,
        end_slot=args.end_slot,
        num_blocks=args.num_blocks,
        batch_size=_pick(args.batch_size, settings.batch_size),
        max_retries=_pick(args.max_retries, settings.max_retries),
        retry_delay_sec=_pick(args.retry_delay, settings.retry_delay_sec),
        retry_max_delay_sec=settings.retry_max_delay_sec,
        continuous=args.continuous,
        poll_interval_sec=_pick(args.interval, settings.poll_interval_sec),
        finality_lag=settings.finality_lag,
        lookback=settings.lookback,
    )
    config.validate()
    return config


def _print_connection_info(info: dict[str, Any]) -> None:
    block_time = info.get("block_time")
    when = (
        datetime.fromtimestamp(block_time, tz=timezone.utc).isoformat()
        if isinstance(block_time, int)
        else "n/a"
    )
    print(f"RPC endpoint:     {info.get('endpoint')}")
    print(f"Node version:     {info.get('version') or 'n/a'}")
    print(f"Latest blockhash: {info.get('latest_blockhash') or 'n/a'}")
    print(f"Current slot:     {format_number(info.get('current_slot') or 0)}")
    print(f"Block time:       {when}")


def _install_signal_handlers(pipeline: Pipeline) -> None:
    loop = asyncio.get_running_loop()

    def _handle(name: str) -> None:
        logger.info("shutdown_signal", signal=name)
        pipeline.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle, sig.name)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform / not the main thread
            pass


async def run(config: PipelineConfig, rpc_url: str, database_url: str, *, timeout_sec: float) -> PipelineStats:
    """
    Startup checks, then the pipeline.

    Raises:
        ConfigurationError: database or RPC endpoint unreachable, or bad range.
    """
    db = Database(database_url)
    try:
        db.check_connection()
        init_db(db)
        registry = load_program_registry(db)
        print(f"Program registry: {len(registry)} programs")

        async with SolanaRpcClient(rpc_url, timeout_sec=timeout_sec) as rpc:
            if not await rpc.test_connection():
                raise ConfigurationError(f"RPC endpoint unreachable: {mask_url(rpc_url)}")
            try:
                _print_connection_info(await rpc.get_connection_info())
            except Exception as e:
                logger.warning("connection_info_failed", error=str(e))

            transformer = BlockTransformer(TransactionClassifier(InstructionClassifier(registry)))
            pipeline = Pipeline(rpc, transformer, BatchLoader(db), config)
            _install_signal_handlers(pipeline)
            return await pipeline.run()
    finally:
        db.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_format:
        configure_structlog(args.log_format)
    try:
        settings = get_settings()
        config = config_from_args(args, settings)
        rpc_url = args.rpc_url or settings.rpc_url
        database_url = args.database_url or settings.database_url
        logger.info(
            "block_fetcher_starting",
            rpc_url=mask_url(rpc_url),
            database_url=mask_url(database_url),
            batch_size=config.batch_size,
            continuous=config.continuous,
        )
        stats = asyncio.run(
            run(config, rpc_url, database_url, timeout_sec=settings.request_timeout_sec)
        )
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.info("interrupted")
        return EXIT_INTERRUPTED

    print(stats.render())
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
