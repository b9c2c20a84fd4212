"""Error taxonomy shared by the tracker's components."""

from __future__ import annotations


class PackingError(RuntimeError):
    """Base exception for failures surfaced to operators."""

    kind = "Error"


class NotFoundError(PackingError):
    """A customer, archive record or backup artifact is missing."""

    kind = "NotFound"


class MissingArtifactError(NotFoundError):
    """An archive record points at a backup artifact that no longer exists."""

    kind = "MissingArtifact"


class InvalidStateError(PackingError):
    """A lifecycle guard rejected the requested operation."""

    kind = "InvalidState"


InvalidTransition = InvalidStateError


class IOFailureError(PackingError):
    """Compression, decompression or filesystem access failed."""

    kind = "IOFailure"


class ConflictError(PackingError):
    """Another mutation holds the customer; the caller may retry later."""

    kind = "Conflict"


__all__ = [
    "PackingError",
    "NotFoundError",
    "MissingArtifactError",
    "InvalidStateError",
    "InvalidTransition",
    "IOFailureError",
    "ConflictError",
]
