import math
from typing import Any, Optional, TypedDict


class LocationSample(TypedDict):
    latitude: float
    longitude: float
    accuracy: float  # meters
    altitude: float  # meters
    speed: float  # meters per second
    captured_at_ms: int


class DeviceIdentity(TypedDict):
    device_id: str
    endpoint_base_url: str


def _is_coordinate(value: Any, limit: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False

    return math.isfinite(value) and -limit <= value <= limit


def is_valid_fix(sample: Optional[LocationSample]) -> bool:
    if sample is None:
        return False

    return _is_coordinate(sample.get("latitude"), 90.0) and _is_coordinate(
        sample.get("longitude"), 180.0
    )
