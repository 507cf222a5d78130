import time
import datetime
from abc import ABC, abstractmethod
import threading
from threading import Thread
from typing import Any, Callable, Optional, Protocol, Tuple, cast
from pynmeagps import NMEAMessage, NMEAReader
from serial import Serial

from trackium.logger import get_logger
from trackium.position import LocationSample

# Typical user equivalent range error, multiplied by HDOP to estimate accuracy
UERE_METERS = 5.0

KNOTS_TO_MPS = 0.514444

logger = get_logger()

LocationCallback = Callable[[Optional[LocationSample]], None]


class SubscriptionHandle:
    def __init__(
        self, min_interval_ms: int, target_interval_ms: int, callback: LocationCallback
    ):
        self.min_interval_ms = min_interval_ms
        self.target_interval_ms = target_interval_ms
        self.callback = callback
        self.stop_event = threading.Event()
        self.thread: Thread | None = None

    @property
    def active(self) -> bool:
        return not self.stop_event.is_set()

    @property
    def pace_seconds(self) -> float:
        # Never deliver faster than the minimum interval
        return max(self.min_interval_ms, self.target_interval_ms) / 1000.0


class LocationProvider(Protocol):
    def subscribe(
        self, min_interval_ms: int, target_interval_ms: int, callback: LocationCallback
    ) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


class ThreadedLocationProvider(ABC):
    """Runs one reader thread per subscription, stopped by ``unsubscribe``."""

    name = "location"

    def subscribe(
        self, min_interval_ms: int, target_interval_ms: int, callback: LocationCallback
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(min_interval_ms, target_interval_ms, callback)
        handle.thread = threading.Thread(target=self.run, args=(handle,), daemon=True)
        handle.thread.start()

        logger.info(
            f"Subscribed to {self.name} updates every {target_interval_ms}ms "
            f"(minimum {min_interval_ms}ms)"
        )
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handle.stop_event.set()

        thread = handle.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)

        logger.info(f"Unsubscribed from {self.name} updates")

    @abstractmethod
    def run(self, handle: SubscriptionHandle) -> None:
        """Read fixes and hand them to ``handle.callback`` until the handle is stopped."""


def _as_float(value: Any) -> Optional[float]:
    # pynmeagps reports empty fields as ""
    if value is None or value == "":
        return None

    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class NMEAFixAssembler:
    """
    Turns a stream of NMEA sentences into location samples.

    RMC carries the date and ground speed, GGA carries the position, altitude
    and HDOP. A sample is produced on each GGA with a valid fix; speed is only
    taken from an RMC describing the same epoch so a sample never mixes two
    different fixes.
    """

    def __init__(self) -> None:
        self.current_date: datetime.date | None = None
        self.last_rmc: Optional[Tuple[datetime.time, float]] = None

    def feed(self, message: NMEAMessage) -> Optional[LocationSample]:
        if message.msgID == "RMC":
            # If this message has a malformed date, skip it and wait for one with a valid date
            if message.date is None or message.date == "":
                return None

            self.current_date = message.date
            speed_knots = _as_float(message.spd)
            self.last_rmc = (
                cast(datetime.time, message.time),
                speed_knots * KNOTS_TO_MPS if speed_knots is not None else 0.0,
            )
            return None

        if message.msgID != "GGA" or self.current_date is None:
            return None

        latitude = _as_float(message.lat)
        longitude = _as_float(message.lon)
        if latitude is None or longitude is None or not message.quality:
            return None

        speed = 0.0
        if self.last_rmc is not None and self.last_rmc[0] == message.time:
            speed = self.last_rmc[1]

        hdop = _as_float(message.HDOP)
        altitude = _as_float(message.alt)

        captured_at = datetime.datetime.combine(
            self.current_date,
            cast(datetime.time, message.time),
            tzinfo=datetime.timezone.utc,
        )

        return LocationSample(
            latitude=latitude,
            longitude=longitude,
            accuracy=hdop * UERE_METERS if hdop is not None else 0.0,
            altitude=altitude if altitude is not None else 0.0,
            speed=speed,
            captured_at_ms=int(captured_at.timestamp() * 1000),
        )


class NMEALocationProvider(ThreadedLocationProvider):
    """Location fixes from a serial NMEA GPS receiver."""

    name = "NMEA"

    def __init__(self, device: str, baud: int):
        self.device = device
        self.baud = baud

    def run(self, handle: SubscriptionHandle) -> None:
        assembler = NMEAFixAssembler()
        last_delivery: Optional[float] = None

        try:
            with Serial(self.device, self.baud, timeout=3) as stream:
                nmr = NMEAReader(stream)

                while handle.active:
                    try:
                        _, message = nmr.read()
                    except Exception as e:
                        logger.debug(f"Error reading NMEA data: {e}")
                        continue

                    if message is None:
                        continue

                    sample = assembler.feed(message)
                    if sample is None:
                        continue

                    now = time.monotonic()
                    if (
                        last_delivery is not None
                        and now - last_delivery < handle.pace_seconds
                    ):
                        continue

                    last_delivery = now
                    handle.callback(sample)

        except Exception as e:
            logger.error(f"Error in NMEA reader thread: {e}")
        finally:
            logger.info("NMEA reader thread stopped")
