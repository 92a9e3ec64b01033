from __future__ import annotations


class PacRouteError(Exception):
    """Base class for errors raised inside pacroute."""


class TransportError(PacRouteError):
    """A remote fetch or ping failed (network, HTTP status or bad payload)."""


class ConfigurationError(PacRouteError):
    """The platform refused to install a proxy configuration."""


class ClassificationInputError(PacRouteError, ValueError):
    """A host could not be parsed as an IP literal."""


class EmptyPolicyError(PacRouteError):
    """There are no blocked domains to build a PAC script from."""


class StorageError(PacRouteError):
    """The state file could not be read or written."""
