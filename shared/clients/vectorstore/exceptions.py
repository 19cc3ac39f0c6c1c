"""Exceptions raised by vector store clients and the citation validator.

Processing failures of individual files are not exceptions: they are reported
through the file status (``status="failed"`` plus ``error``).
"""


class VectorStoreError(Exception):
    """Base exception for all vector store operations."""

    pass


class ConfigurationError(VectorStoreError):
    """Missing or invalid configuration, raised at construction time."""

    pass


class ValidationError(VectorStoreError):
    """Malformed request: schema mismatch, oversized file, unsupported type, empty or oversized batch."""

    pass


class NotFoundError(VectorStoreError):
    """Operation referenced an unknown file, batch or store id."""

    pass


class ProcessingTimeoutError(VectorStoreError, TimeoutError):
    """Waiting for processing exceeded its budget.

    The processing status is unknown at this point, not failed. Callers should
    poll again or report the status as unknown.
    """

    def __init__(self, message: str, target_id: str, timeout_ms: float):
        self.target_id = target_id
        self.timeout_ms = timeout_ms
        super().__init__(message)


class RateLimitError(VectorStoreError):
    """The backend rejected the request because of rate limiting."""

    def __init__(self, message: str, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class CitationContractError(AssertionError):
    """A generated response violates the citation contract."""

    pass
