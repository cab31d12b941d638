"""
Core utilities: exception taxonomy shared by the RPC client, ETL stages,
batch loader and pipeline coordinator.
"""
