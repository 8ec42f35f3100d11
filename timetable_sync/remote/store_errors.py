class StoreError(Exception):
    """Base class for every failure reported by a remote schedule store."""


class StoreUnconfigured(StoreError):
    """The backend binding is absent. Terminal for the call; callers fall back to local storage."""


class StoreUnreachable(StoreError):
    """Transient network or transport failure. Retried on the next save or poll cycle."""


class StoreBadRequest(StoreError):
    """The store rejected a write as malformed. Nothing was written."""


class StoreInternalError(StoreError):
    """Unexpected failure inside the store. Nothing was written."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.details = details
