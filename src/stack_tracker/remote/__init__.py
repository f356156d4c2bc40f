"""Remote authoritative store and its backends."""

from .client import HoldingsApiClient
from .database import HoldingsDatabase
from .decoding import decode_notes, decode_product_type, decode_row
from .store import RemoteBackend, RemoteHoldingsStore, build_remote_backend

__all__ = [
    "HoldingsApiClient",
    "HoldingsDatabase",
    "RemoteBackend",
    "RemoteHoldingsStore",
    "build_remote_backend",
    "decode_notes",
    "decode_product_type",
    "decode_row",
]
