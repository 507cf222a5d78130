import os
import shutil
from typing import Protocol

from trackium.client.tasks.termux import TERMUX_LOCATION


class LocationPermission(Protocol):
    def is_location_permission_granted(self) -> bool: ...


class DevicePermission:
    """Granted when the current user may read the GPS serial device."""

    def __init__(self, device: str):
        self.device = device

    def is_location_permission_granted(self) -> bool:
        return os.access(self.device, os.R_OK)


class TermuxPermission:
    def is_location_permission_granted(self) -> bool:
        return shutil.which(TERMUX_LOCATION) is not None
