"""
Main entrypoint: run the block ETL pipeline from the project root.

    python main.py -s 250000000 -n 100
    python main.py --continuous

Same arguments as `python -m block_fetcher.cli` / `block-data-fetcher`.
"""

import sys

from block_fetcher.cli import main

if __name__ == "__main__":
    sys.exit(main())
