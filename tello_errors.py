"""
Exception taxonomy for the Tello command link.

Every failure reaches the immediate caller of the failing operation;
nothing here is retried internally.
"""


class TelloError(Exception):
    """Base class for everything raised by the link."""


class InvalidArgumentError(TelloError, ValueError):
    """Command parameter outside the documented firmware range."""


class IllegalStateError(TelloError):
    """Operation not legal for the current link state (or a consumed handle)."""


class TransportError(TelloError, OSError):
    """Socket-level failure. Fatal to the session it happens on."""


class LinkTimeout(TelloError, TimeoutError):
    """WiFi association with the drone was never observed."""


class CommandTimeout(TelloError, TimeoutError):
    """No reply arrived before the command's deadline."""

    def __init__(self, command: str, timeout: float):
        super().__init__(f"No reply to '{command}' within {timeout:.2f}s")
        self.command = command
        self.timeout = timeout


class ProtocolError(TelloError):
    """Reply text does not have the shape expected for the command."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class AckError(TelloError):
    """The firmware explicitly rejected the command."""

    def __init__(self, command: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Drone rejected '{command}'{detail}")
        self.command = command
        self.reason = reason
