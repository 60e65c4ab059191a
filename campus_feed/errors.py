"""Exceptions raised by the campus feed library."""

from typing import Optional


class FeedError(Exception):
    """Base class for campus feed errors."""


class TransientNetworkFailure(FeedError):
    """
    A fetch or vote upsert failed because the backend could not be reached
    or answered with a retryable error.

    Callers show a non-fatal notice; nothing is retried automatically.
    """

    def __init__(self, operation: str, message: str = "", cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = message or (str(cause) if cause else "backend unavailable")
        super().__init__(f"{operation} failed: {detail}")
