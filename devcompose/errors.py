"""Exception types raised by the devcontainer feature composer."""

from __future__ import annotations


class DevComposeError(Exception):
    """Base exception for devcompose operations."""


class MalformedReferenceError(DevComposeError):
    """Raised when a string cannot be parsed into origin, name and tag."""


class ManifestUnavailableError(DevComposeError):
    """Raised when a feature manifest cannot be found, read or fetched."""


class InvalidInputError(DevComposeError):
    """Raised when a resolution is requested with invalid arguments."""


class ResolutionCancelledError(DevComposeError):
    """Raised when a resolution run is aborted through its cancel event."""


class ConfigurationError(DevComposeError):
    """Raised when configuration is invalid or cannot be read."""
