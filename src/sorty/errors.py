"""
Exception types raised by sorty.

Per-file I/O problems are plain OSError subclasses so callers can catch them
alongside the errors raised by the filesystem itself.
"""


class SortyError(Exception):
    """Base error for the project."""
    pass


class ConfigError(SortyError):
    """Raised when a rule set or configuration file is invalid."""
    pass


class OperationCancelled(SortyError):
    """Raised when a scan, analysis or execution is cancelled cooperatively."""
    pass


class HashTimeoutError(OSError):
    """Raised when reading a file for hashing exceeds the read timeout."""
    pass
