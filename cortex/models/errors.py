"""
Failure taxonomy for the briefing pipeline.

Per-source and per-item failures are caught at the orchestrator and batch
processor boundaries and turned into error entries. Only AuthError and a
mandatory ConfigurationError are meant to end a run.
"""


class CortexError(Exception):
    """Base class for all pipeline errors."""


class SourceFetchError(CortexError):
    """An external source could not be reached or answered with an error."""

    def __init__(self, message: str, source: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class ParseError(CortexError):
    """An external payload could not be decoded."""


class ValidationError(CortexError):
    """A decoded payload did not have the expected shape."""


class PersistenceError(CortexError):
    """A store read or write failed."""


class RateLimited(CortexError):
    """The remote side throttled us. retry_after is the server-specified delay in seconds."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthError(CortexError):
    """Caller presented a missing or wrong shared secret."""


class ConfigurationError(CortexError):
    def __init__(self, message: str, mandatory: bool = False):
        super().__init__(message)
        self.mandatory = mandatory
