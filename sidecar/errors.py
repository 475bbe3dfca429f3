"""Error taxonomy shared by the repository client, lookup and report pipeline."""

from __future__ import annotations

from typing import Optional


class SidecarError(Exception):
    """Base class for every error raised by the sidecar core."""


class NotFound(SidecarError):
    """The repository returned no entity for the requested id."""


class TransportError(SidecarError):
    """Network or protocol failure talking to the repository or lookup service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HashUnavailable(SidecarError):
    """SHA-256 cannot be computed in this environment."""


class ResolutionFallback(SidecarError):
    """The remote lookup was attempted and the static fallback must be used.

    Not a user-facing error: the resolver raises and catches it internally.
    """


class NothingToCompose(SidecarError):
    """A combined report was requested before any report document was loaded."""


class ComposeFailed(SidecarError):
    """Rendering or assembling the combined report failed."""


class ConfigurationError(SidecarError):
    """The inference endpoint is not configured."""


class InvalidSelection(SidecarError):
    """The submitted (model, image label) pair has no indexed record."""
