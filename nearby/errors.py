"""Exception types raised by the nearby-device core."""
from __future__ import annotations


class NearbyError(Exception):
    """Base class for all errors raised by :mod:`nearby`."""


class ScanStartError(NearbyError):
    """The radio refused to begin a discovery session."""


class PeripheralCommandError(NearbyError):
    """A connect or disconnect command against a peripheral failed."""

    action = "command"

    def __init__(self, peripheral_id: str, message: str = "") -> None:
        self.peripheral_id = peripheral_id
        self.reason = message
        detail = f"{self.action} failed for {peripheral_id}"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)


class ConnectError(PeripheralCommandError):
    action = "connect"


class DisconnectError(PeripheralCommandError):
    action = "disconnect"


class UnknownPeripheralError(NearbyError):
    """No registry record exists for the requested peripheral."""

    def __init__(self, peripheral_id: str) -> None:
        self.peripheral_id = peripheral_id
        super().__init__(f"unknown peripheral: {peripheral_id}")


__all__ = [
    "NearbyError",
    "ScanStartError",
    "PeripheralCommandError",
    "ConnectError",
    "DisconnectError",
    "UnknownPeripheralError",
]
