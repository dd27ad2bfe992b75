"""Exception types raised by the monitor."""
from __future__ import annotations


class AquamonError(Exception):
    """Base class for all monitor errors."""


class ConfigError(AquamonError, ValueError):
    """Configuration is missing or inconsistent. Fatal at startup."""


class TransportOpenError(AquamonError):
    """The serial link could not be opened. Nothing can be acquired without it."""


class TransportIoError(AquamonError, IOError):
    """A read or write on an open transport failed or timed out."""


class CrcMismatchError(AquamonError, ValueError):
    """A received frame failed its CRC-16 check."""

    def __init__(self, expected: int, computed: int):
        self.expected = expected
        self.computed = computed
        super().__init__(f"CRC 0x{computed:04X} does not match 0x{expected:04X}")


class LogWriteError(AquamonError, IOError):
    """Appending to (or rotating) the CSV log failed."""
