"""Error taxonomy for the sensor dashboard client."""
from __future__ import annotations
from typing import Optional


class SensorDashError(Exception):
    """Base exception for sensordash."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(SensorDashError):
    """Transport or connectivity failure, including timeouts and 5xx replies."""


class ProtocolError(SensorDashError):
    """The Gateway answered with a malformed or unexpected response."""


class ConflictError(SensorDashError):
    """The Gateway rejected a command because the target sensor no longer exists."""


class PreconditionError(SensorDashError):
    """A local invariant does not hold, so the command was not attempted."""
