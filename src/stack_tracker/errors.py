"""Error taxonomy shared by the stores and the sync coordinator."""


class HoldingsError(Exception):
    """Base exception for holdings operations."""


class ValidationError(HoldingsError):
    """Form input was rejected before reaching any store."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(HoldingsError):
    """The id has no matching record in the targeted store."""

    def __init__(self, holding_id: str, store: str = "local") -> None:
        super().__init__(f"Holding with id {holding_id} not found in {store} store")
        self.holding_id = holding_id
        self.store = store


class PersistenceError(HoldingsError):
    """A local write failed. There is no fallback for this."""


class RemoteUnavailableError(HoldingsError):
    """The remote service could not be reached or rejected the request.

    The sync coordinator recovers from this by mirroring the write locally
    and queueing it for replay, so callers of the coordinator never see it.
    """
