"""roofline custom exceptions."""

from __future__ import annotations


class RooflineError(Exception):
    """Base exception for all roofline errors."""


class InputError(RooflineError):
    """Raised when input geometry or parameters are malformed."""


class WKTError(InputError):
    """Raised when a WKT string cannot be parsed into the expected geometry."""


class SourceUnavailable(RooflineError):
    """Raised by a footprint source that timed out or failed."""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        super().__init__(f"Source '{source}' unavailable: {reason}" if reason else f"Source '{source}' unavailable")


class FootprintUnavailable(RooflineError):
    """Raised when no usable footprint and no reference bounding box exist."""


class SkeletonError(RooflineError):
    """Raised when the straight-skeleton wavefront fails to converge."""


class TopologyBuildError(RooflineError):
    """Raised when a roof topology cannot be derived from a footprint."""


class AuditError(RooflineError):
    """Raised when audit logging fails."""
