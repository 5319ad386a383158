"""
Exception types shared across the ban watch service.

Remote API failures carry a closed ``ErrorKind`` so callers branch on the kind,
never on message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classification of a failed remote API request."""
    RATE_LIMITED = "rate_limited"  # HTTP 429
    NOT_FOUND = "not_found"  # HTTP 404
    FORBIDDEN = "forbidden"  # HTTP 403
    TIMEOUT = "timeout"
    MALFORMED = "malformed"  # body is not the JSON we asked for
    NETWORK_ERROR = "network_error"  # connection refused, reset, DNS...
    UNEXPECTED_STATUS = "unexpected_status"  # any other non-2xx

    @property
    def is_not_accessible(self) -> bool:
        """404/403 usually mean the account is gone or hidden."""
        return self in (ErrorKind.NOT_FOUND, ErrorKind.FORBIDDEN)


class BanWatchError(Exception):
    """Base exception for the ban watch service."""
    pass


class RankedAPIError(BanWatchError):
    """Raised when a ranked API request fails after classification."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"RankedAPIError(kind={self.kind.value!r}, status_code={self.status_code!r})"


class SnapshotUnavailable(BanWatchError):
    """Raised when the leaderboard snapshot came back empty."""
    pass


class StoreError(BanWatchError):
    """Raised when tracking state cannot be written."""
    pass
