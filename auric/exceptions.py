class AuricError(Exception):
    """Base exception for all engine errors."""


class StoreError(AuricError):
    """Raised when a store read or write fails."""


class StaleWriteError(StoreError):
    """Raised when a guarded write finds the row changed since it was read."""


class RateUnavailableError(AuricError):
    """Raised when no rate is available for a position's pool."""


class BatchAbortedError(AuricError):
    """Raised when an accrual run cannot start, e.g. the store is unreachable."""
