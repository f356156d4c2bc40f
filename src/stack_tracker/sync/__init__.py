"""Pending-mutation queue, collaborators and the sync coordinator."""

from .coordinator import SyncCoordinator
from .pending import PendingActionLog, ReplayResult
from .providers import Connectivity, Identity, SessionIdentity, StaticIdentity, probe_url

__all__ = [
    "Connectivity",
    "Identity",
    "PendingActionLog",
    "ReplayResult",
    "SessionIdentity",
    "StaticIdentity",
    "SyncCoordinator",
    "probe_url",
]
