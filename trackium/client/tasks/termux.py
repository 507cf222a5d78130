import json
import subprocess
from typing import Optional

from trackium.logger import get_logger
from trackium.position import LocationSample
from trackium.protocol import now_ms
from trackium.client.tasks.collection import SubscriptionHandle
from trackium.client.tasks.collection import ThreadedLocationProvider

TERMUX_LOCATION = "termux-location"

# "network" is the balanced power source, "gps" gives the best precision
DEFAULT_SOURCE = "network"

logger = get_logger()


def parse_termux_location(output: str) -> Optional[LocationSample]:
    if not output.strip():
        return None

    fix = json.loads(output)
    if not isinstance(fix, dict) or "latitude" not in fix or "longitude" not in fix:
        return None

    # elapsedMs is the age of the fix when termux-location answered
    age_ms = int(fix.get("elapsedMs") or 0)

    return LocationSample(
        latitude=float(fix["latitude"]),
        longitude=float(fix["longitude"]),
        accuracy=float(fix.get("accuracy") or 0.0),
        altitude=float(fix.get("altitude") or 0.0),
        speed=float(fix.get("speed") or 0.0),
        captured_at_ms=now_ms() - age_ms,
    )


class TermuxLocationProvider(ThreadedLocationProvider):
    """Location fixes from an Android phone through the termux-api add-on."""

    name = "termux"

    def __init__(self, source: str = DEFAULT_SOURCE, request_timeout: float = 30.0):
        self.source = source
        self.request_timeout = request_timeout

    def read_fix(self) -> Optional[LocationSample]:
        cmd = [TERMUX_LOCATION, "--provider", self.source, "--request", "once"]
        output = subprocess.check_output(cmd, text=True, timeout=self.request_timeout)
        return parse_termux_location(output)

    def run(self, handle: SubscriptionHandle) -> None:
        while handle.active:
            try:
                sample = self.read_fix()
            except (subprocess.SubprocessError, OSError, TypeError, ValueError) as e:
                logger.warning(f"termux-location failed: {e}")
            else:
                if handle.active:
                    handle.callback(sample)

            handle.stop_event.wait(handle.pace_seconds)

        logger.info("termux-location poller stopped")
