from typing import List, Optional


class PropwatchError(Exception):
    """Base class for every error raised by the propwatch client."""


class ParseError(PropwatchError):
    """The uploaded file is not delimited tabular data with a header row."""


class ValidationError(PropwatchError):
    """Input was rejected locally before any request was sent."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class InvalidTransition(PropwatchError):
    """An ingestion operation was attempted in a state that does not allow it."""


class NetworkError(PropwatchError):
    """No response was obtained from the remote service."""


class RemoteError(PropwatchError):
    """The remote service answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: Optional[str] = None, fallback: str = "Request failed"):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail or f"{fallback} (HTTP {status_code})")


class AuthError(RemoteError):
    """The bearer token was missing, expired or rejected (HTTP 401)."""

    def __init__(self, detail: Optional[str] = None, status_code: int = 401):
        super().__init__(status_code, detail, fallback="Session expired, please log in again")
