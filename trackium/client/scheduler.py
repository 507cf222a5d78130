import enum
import functools
import threading
from typing import Callable, Optional

from trackium.logger import get_logger
from trackium.position import DeviceIdentity, LocationSample, is_valid_fix
from trackium.outcome import DeliveryOutcome, Skipped, REASON_PERMISSION_DENIED
from trackium.client.permission import LocationPermission
from trackium.client.tasks.collection import LocationProvider
from trackium.client.tasks.collection import SubscriptionHandle

# 3 minutes between fixes, never more often than once a minute
DEFAULT_TARGET_INTERVAL_MS = 180_000
DEFAULT_MIN_INTERVAL_MS = 60_000

logger = get_logger()

SampleCallback = Callable[[LocationSample, DeviceIdentity], None]
OutcomeCallback = Callable[[DeliveryOutcome], None]


class SessionState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPING = "stopping"


class SamplingScheduler:
    """
    Subscribes to a location provider for the length of a session and
    forwards every valid fix, unbuffered and in arrival order, to
    ``on_sample``.

    The provider owns the cadence; the scheduler only asks for it and passes
    fixes through. Fixes arriving after ``stop`` has begun, or from an older
    subscription, are ignored.

    ``on_sample`` runs on the provider thread while the state lock is held,
    so it must hand the sample off and return without blocking (i.e start a
    thread for the upload) or ``stop`` waits for it.
    """

    def __init__(
        self,
        provider: LocationProvider,
        permission: LocationPermission,
        on_sample: SampleCallback,
        on_outcome: Optional[OutcomeCallback] = None,
        target_interval_ms: int = DEFAULT_TARGET_INTERVAL_MS,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
    ):
        self.provider = provider
        self.permission = permission
        self.on_sample = on_sample
        self.on_outcome = on_outcome
        self.target_interval_ms = target_interval_ms
        self.min_interval_ms = min_interval_ms
        self.state = SessionState.IDLE
        self.state_lock = threading.Lock()
        self.identity: Optional[DeviceIdentity] = None
        self.handle: Optional[SubscriptionHandle] = None
        self.generation = 0

    def start(self, identity: DeviceIdentity) -> Optional[Skipped]:
        with self.state_lock:
            if self.state is not SessionState.IDLE:
                logger.debug(f"Scheduler already {self.state.value}, ignoring start")
                return None

            if not self.permission.is_location_permission_granted():
                logger.warning("Location permission not granted, not tracking")
                denied = Skipped(REASON_PERMISSION_DENIED)
            else:
                denied = None
                self.identity = identity
                self.state = SessionState.ACTIVE
                self.generation += 1
                generation = self.generation

        if denied is not None:
            if self.on_outcome is not None:
                self.on_outcome(denied)
            return denied

        try:
            handle = self.provider.subscribe(
                self.min_interval_ms,
                self.target_interval_ms,
                functools.partial(self._on_fix, generation),
            )
        except Exception:
            with self.state_lock:
                self.state = SessionState.IDLE
                self.identity = None
            raise

        with self.state_lock:
            if self.state is SessionState.ACTIVE and self.generation == generation:
                self.handle = handle
                handle = None

        # stop() ran while we were subscribing
        if handle is not None:
            self.provider.unsubscribe(handle)

        return None

    def stop(self) -> None:
        with self.state_lock:
            if self.state is not SessionState.ACTIVE:
                return

            self.state = SessionState.STOPPING
            handle = self.handle
            self.handle = None

        try:
            if handle is not None:
                self.provider.unsubscribe(handle)
        finally:
            with self.state_lock:
                self.state = SessionState.IDLE
                self.identity = None

        logger.info("Sampling stopped")

    def _on_fix(self, generation: int, sample: Optional[LocationSample]) -> None:
        if not is_valid_fix(sample):
            logger.debug(f"Dropping invalid fix: {sample}")
            return

        # Held while forwarding so nothing gets through once stop() has begun
        with self.state_lock:
            if (
                self.state is not SessionState.ACTIVE
                or generation != self.generation
                or self.identity is None
            ):
                logger.debug("Ignoring fix delivered outside an active session")
                return

            if sample is not None:
                self.on_sample(sample, self.identity)
