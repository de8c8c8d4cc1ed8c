"""
Error taxonomy for world building and playlist generation.

Math and scoring errors indicate programmer error and are raised immediately.
Upstream errors are split into retryable (rate limiting) and terminal ones.
"""
from typing import Optional

from taste_world.retry_helper import RetryableError


class TasteWorldError(Exception):
    """Base class for every error raised by the taste world core"""
    pass


class InsufficientSeedData(TasteWorldError):
    """Raised when no seed track with resolved audio features is available"""
    pass


class NoSeedTracks(TasteWorldError):
    """Raised when a world has no seed track ids to harvest from"""
    pass


class DimensionMismatch(TasteWorldError, ValueError):
    """Raised when two vectors of different lengths are compared"""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vectors must have same length (got {left} and {right})")
        self.left = left
        self.right = right


class WorldExtractionFailed(TasteWorldError):
    """Raised when the language model output cannot be turned into a world"""
    pass


class UpstreamRateLimited(TasteWorldError, RetryableError):
    """Raised on HTTP 429 / provider rate limiting. Retried with backoff."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamUnavailable(TasteWorldError):
    """Raised when an upstream call fails in a way that is not worth retrying"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WorldNotFound(TasteWorldError):
    """Raised when an owner has no stored world"""
    pass


class RegenerationCooldown(TasteWorldError):
    """Raised when an intersection was regenerated too recently"""

    def __init__(self, intersection_name: str, remaining_seconds: float):
        minutes = max(1, int(-(-remaining_seconds // 60)))
        super().__init__(
            f"Please wait {minutes} more minutes before regenerating {intersection_name}"
        )
        self.intersection_name = intersection_name
        self.remaining_seconds = remaining_seconds
