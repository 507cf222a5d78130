from dataclasses import dataclass
from typing import Union

REASON_NO_DEVICE_ID = "no_device_id"
REASON_PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True)
class Success:
    pass


@dataclass(frozen=True)
class RejectedByServer:
    status_code: int


@dataclass(frozen=True)
class TransportError:
    message: str
    # False when the failure came from outside the network stack (i.e serialization)
    network: bool = True


@dataclass(frozen=True)
class Skipped:
    reason: str


DeliveryOutcome = Union[Success, RejectedByServer, TransportError, Skipped]
