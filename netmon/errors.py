"""
Exception hierarchy for netmon.
"""


class NetmonError(Exception):
    """Base class for all netmon errors."""


class ConfigError(NetmonError):
    """Raised when configuration data is missing or invalid."""


class StorageError(NetmonError):
    """Raised when the store is used incorrectly or a write fails."""


class TrapDecodeError(NetmonError):
    """Raised when an inbound notification datagram cannot be decoded."""


class DiscoveryError(NetmonError):
    """Raised when a discovery request cannot be accepted."""
