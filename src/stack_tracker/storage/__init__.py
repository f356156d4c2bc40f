"""Local JSON storage and CSV interchange."""

from .blobs import JsonBlobStorage
from .exports import export_to_csv, holdings_to_csv, parse_holdings_csv
from .local_store import LocalHoldingsStore, generate_local_id

__all__ = [
    "JsonBlobStorage",
    "LocalHoldingsStore",
    "export_to_csv",
    "generate_local_id",
    "holdings_to_csv",
    "parse_holdings_csv",
]
