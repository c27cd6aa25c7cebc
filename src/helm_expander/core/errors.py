"""Error taxonomy for chart resolution and release expansion."""

from __future__ import annotations


class ExpanderError(Exception):
    """Base class for all expansion failures."""

    def wrap(self, message: str) -> ExpanderError:
        """Return an error of the same class with ``message`` prepended."""
        return type(self)(f"{message}: {self}")


class ConfigError(ExpanderError):
    """Unknown repository kind or URL scheme, malformed constraint or input."""


class AuthError(ExpanderError):
    """Missing or rejected credentials."""


class NotFoundError(ExpanderError):
    """No chart, version, tag or repository matching the request."""


class TransportError(ExpanderError):
    """Clone, download or registry failure."""


class CacheCorruptionError(ExpanderError):
    """A disk cache entry could not be loaded or written."""


class RenderError(ExpanderError):
    """The external renderer failed to produce manifests."""
