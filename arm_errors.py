# Author: Omi Shrestha

"""
Error types shared by the BLE session and the arm controller.
"""


class ArmError(Exception):
    """Base class for every error raised by the arm control stack."""


class TransportError(ArmError):
    """The platform BLE binding failed an operation."""


class CapabilityUnavailable(ArmError):
    """The platform has no usable Bluetooth LE support."""


class ConnectError(ArmError):
    """A step of the connect sequence failed.

    Attributes:
        step: Name of the failing step ("discovery", "transport", "channels"
            or "subscribe").
    """

    def __init__(self, step, message=""):
        self.step = step
        super().__init__(f"{step} failed: {message}" if message else f"{step} failed")


class ConnectTimeout(ConnectError):
    """The connect sequence did not finish within its time bound."""

    def __init__(self, step, timeout):
        self.timeout = timeout
        super().__init__(step, f"timed out after {timeout:.1f}s")


class DecodeError(ArmError, ValueError):
    """An inbound status payload could not be decoded."""


class WriteError(ArmError):
    """Writing a command to the arm failed."""
