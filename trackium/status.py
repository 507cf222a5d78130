import os
import queue
import threading
from threading import Thread
from typing import List, Optional, Protocol, Tuple

from trackium.logger import get_logger
from trackium.position import LocationSample
from trackium.outcome import (
    DeliveryOutcome,
    RejectedByServer,
    Skipped,
    Success,
    TransportError,
    REASON_NO_DEVICE_ID,
    REASON_PERMISSION_DENIED,
)

STATUS_STARTING = "Starting..."
STATUS_TRACKING = "Tracking location..."
STATUS_STOPPED = "Tracking stopped"
STATUS_UPLOADED = "Location uploaded ✓"
STATUS_NO_PERMISSION = "Location permission not granted"
STATUS_NO_DEVICE_ID = "No Device ID configured"

logger = get_logger()


def describe_location(sample: LocationSample) -> str:
    return f"Location: {sample['latitude']:.6f}, {sample['longitude']:.6f}"


def describe_outcome(outcome: DeliveryOutcome) -> str:
    if isinstance(outcome, Success):
        return STATUS_UPLOADED

    if isinstance(outcome, RejectedByServer):
        return f"Upload failed: {outcome.status_code}"

    if isinstance(outcome, TransportError):
        if outcome.network:
            return f"Network error: {outcome.message}"
        return f"Error: {outcome.message}"

    if isinstance(outcome, Skipped):
        if outcome.reason == REASON_PERMISSION_DENIED:
            return STATUS_NO_PERMISSION
        if outcome.reason == REASON_NO_DEVICE_ID:
            return STATUS_NO_DEVICE_ID
        return f"Skipped: {outcome.reason}"

    raise TypeError(f"Unknown delivery outcome: {outcome!r}")


class StatusSink(Protocol):
    def publish(self, status_text: str) -> None: ...


class LoggingStatusSink:
    def publish(self, status_text: str) -> None:
        logger.info(f"Status: {status_text}")


class StatusFileSink:
    """Keeps the latest status text in a small file, overwritten on every update."""

    def __init__(self, path: str):
        self.path = path

    def publish(self, status_text: str) -> None:
        temporary_path = f"{self.path}.tmp"

        with open(temporary_path, "w", encoding="utf-8") as f:
            f.write(status_text + "\n")

        os.replace(temporary_path, self.path)


# Queue entry: (session token or None for session-independent text, text)
_StatusMessage = Tuple[Optional[int], str]


class StatusDispatcher:
    """
    Single writer for the visible status text.

    Any thread may call ``publish``; texts are queued and applied in order
    by one worker thread, which is the only place ``current`` is written
    and sinks are called. Texts tagged with a session token are dropped
    once that session is no longer the active one.
    """

    def __init__(self, sinks: Optional[List[StatusSink]] = None):
        self.sinks: List[StatusSink] = list(sinks) if sinks is not None else [
            LoggingStatusSink()
        ]
        self.current = ""
        self.status_queue: queue.Queue[Optional[_StatusMessage]] = queue.Queue()
        self.session_lock = threading.Lock()
        self.active_session: Optional[int] = None
        self.last_session = 0
        self.worker_thread: Thread | None = None

    def begin_session(self) -> int:
        with self.session_lock:
            self.last_session += 1
            self.active_session = self.last_session
            return self.last_session

    def end_session(self) -> None:
        with self.session_lock:
            self.active_session = None

    def _is_current(self, session: Optional[int]) -> bool:
        if session is None:
            return True

        with self.session_lock:
            return session == self.active_session

    def publish(self, status_text: str, session: Optional[int] = None) -> None:
        self.status_queue.put((session, status_text))

    def start(self) -> None:
        if self.worker_thread is not None and self.worker_thread.is_alive():
            return

        self.worker_thread = threading.Thread(target=self.run, daemon=True)
        self.worker_thread.start()

    def stop(self) -> None:
        if self.worker_thread is None:
            return

        self.status_queue.put(None)
        self.worker_thread.join(timeout=5)
        self.worker_thread = None

    def flush(self) -> None:
        """Block until every queued text has been applied or dropped."""
        self.status_queue.join()

    def run(self) -> None:
        while True:
            message = self.status_queue.get()

            try:
                if message is None:
                    break

                session, status_text = message

                if not self._is_current(session):
                    logger.debug(f"Discarding status from ended session: {status_text}")
                    continue

                self.current = status_text

                for sink in self.sinks:
                    try:
                        sink.publish(status_text)
                    except Exception as e:
                        logger.error(f"Status sink {type(sink).__name__} failed: {e}")
            finally:
                self.status_queue.task_done()
