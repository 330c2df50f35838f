"""
Error taxonomy for the tracking core.

Recoverable conditions are absorbed where they occur and surface as per-entry
status; these exceptions carry the typed reason across module boundaries.
"""

from enum import Enum
from typing import Optional


class ParseErrorKind(str, Enum):
    """Why a two-line record was rejected."""

    CHECKSUM_MISMATCH = "checksum_mismatch"
    MALFORMED_FIELD = "malformed_field"
    WRONG_LINE_LENGTH = "wrong_line_length"


class PropagationErrorKind(str, Enum):
    """Why SGP4 could not produce a state."""

    DECAYED = "decayed"
    NUMERICAL_INSTABILITY = "numerical_instability"


class FetchErrorKind(str, Enum):
    """Why a network retrieval failed."""

    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    UNREACHABLE = "unreachable"
    NO_DATA = "no_data"


class OrbitTrackerError(Exception):
    """Base class for all tracking core errors."""


class ParseError(OrbitTrackerError):
    """Raised when a two-line element record fails validation."""

    def __init__(self, kind: ParseErrorKind, message: str):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind


class PropagationError(OrbitTrackerError):
    """Raised when a record cannot be propagated to the requested time."""

    def __init__(self, kind: PropagationErrorKind, message: str, sgp4_error: int = 0):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.sgp4_error = sgp4_error


class NetworkError(OrbitTrackerError):
    """Raised by the fetcher when element sets cannot be retrieved."""

    def __init__(self, kind: FetchErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.status_code = status_code


class ClockError(OrbitTrackerError):
    """Raised when an acceleration factor or time jump is rejected."""


class CacheError(OrbitTrackerError):
    """Raised for cache entries that cannot be read or written."""


class InvariantViolation(OrbitTrackerError):
    """A core invariant was broken by the caller (programmer error)."""
