import json
import time
from typing import Any, Dict, Optional

from trackium.position import LocationSample

# Origin tag so the receiving node can tell companion reports apart
SOURCE_TAG = "android-companion"

UPDATE_PATH = "/api/location/update"
CONTENT_TYPE = "application/json"


def now_ms() -> int:
    return int(time.time() * 1000)


def update_url(endpoint_base_url: str) -> str:
    return endpoint_base_url.rstrip("/") + UPDATE_PATH


def build_payload(
    sample: LocationSample, device_id: str, timestamp_ms: Optional[int] = None
) -> Dict[str, Any]:
    """
    Build the wire record for one sample.

    The timestamp is the wall-clock time at send time, not the time the
    fix was captured. Receivers treat it as "last reported".
    """
    if timestamp_ms is None:
        timestamp_ms = now_ms()

    return {
        "deviceId": device_id,
        "latitude": float(sample["latitude"]),
        "longitude": float(sample["longitude"]),
        "accuracy": float(sample["accuracy"]),
        "altitude": float(sample["altitude"]),
        "speed": float(sample["speed"]),
        "timestamp": int(timestamp_ms),
        "source": SOURCE_TAG,
    }


def encode_payload(payload: Dict[str, Any]) -> bytes:
    # NaN and Infinity are not JSON, refuse them rather than emit garbage
    return json.dumps(payload, allow_nan=False, separators=(",", ":")).encode(
        "utf-8"
    )
