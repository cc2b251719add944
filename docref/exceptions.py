"""Exceptions raised by docref."""


class DocrefError(Exception):
    """Base class for docref errors."""


class ConfigurationError(DocrefError, ValueError):
    """
    Raised when a storage or backend is constructed with invalid settings,
    e.g. without a backing collection or with overlapping key prefixes.
    """
