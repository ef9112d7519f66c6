"""Search error taxonomy surfaced to callers."""

from typing import Optional


class SearchError(Exception):
    """Base error for the search core."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class ValidationError(SearchError):
    """Malformed or oversized client input; rejected, never retried."""

    status_code = 400


class NotFound(SearchError):
    """Referenced listing does not exist."""

    status_code = 404


class Unavailable(SearchError):
    """Storage failure on the primary search path."""

    status_code = 503
