import sys
import time
import logging
import argparse
import functools
import threading
from threading import Thread
from typing import List, Optional, Tuple

from trackium.config import ConfigStore, ConfigError, KEY_DEVICE_ID, KEY_NODE_URL
from trackium.position import DeviceIdentity, LocationSample
from trackium.outcome import DeliveryOutcome, Skipped
from trackium.status import (
    StatusDispatcher,
    StatusFileSink,
    LoggingStatusSink,
    StatusSink,
    describe_location,
    describe_outcome,
    STATUS_STARTING,
    STATUS_STOPPED,
    STATUS_TRACKING,
)
from trackium.client.permission import DevicePermission, LocationPermission
from trackium.client.permission import TermuxPermission
from trackium.client.scheduler import SamplingScheduler, SessionState
from trackium.client.scheduler import DEFAULT_MIN_INTERVAL_MS, DEFAULT_TARGET_INTERVAL_MS
from trackium.client.tasks.collection import LocationProvider, NMEALocationProvider
from trackium.client.tasks.processing import Reporter
from trackium.client.tasks.termux import TermuxLocationProvider, DEFAULT_SOURCE

logging.getLogger("pynmeagps").setLevel(logging.CRITICAL)

PROVIDER_NMEA = "nmea"
PROVIDER_TERMUX = "termux"

DEFAULT_GPS_DEVICE = "/dev/ttyGPS0"
DEFAULT_BAUD = 38400


class TrackiumClient:
    def __init__(
        self,
        provider: LocationProvider,
        permission: LocationPermission,
        config_path: Optional[str] = None,
        status: Optional[StatusDispatcher] = None,
        target_interval_ms: int = DEFAULT_TARGET_INTERVAL_MS,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
    ):
        self.config_path = config_path
        self.status = status if status is not None else StatusDispatcher()
        self.session: Optional[int] = None
        self.reporter = Reporter()
        self.report_threads: List[Thread] = []

        self.scheduler = SamplingScheduler(
            provider,
            permission,
            on_sample=self._on_sample,
            on_outcome=self._on_scheduler_outcome,
            target_interval_ms=target_interval_ms,
            min_interval_ms=min_interval_ms,
        )

    @property
    def state(self) -> SessionState:
        return self.scheduler.state

    def start(self, identity: Optional[DeviceIdentity] = None) -> Optional[Skipped]:
        if self.scheduler.state is not SessionState.IDLE:
            logging.info("Tracking already running")
            return None

        # Re-read on every session so configuration changes take effect on restart
        if identity is None:
            identity = ConfigStore.load(self.config_path).load_identity()

        self.status.start()

        # Not tied to the session, a refused start ends it straight away
        self.status.publish(STATUS_STARTING)

        session = self.status.begin_session()
        self.session = session

        self.reporter = Reporter(notify=functools.partial(self._on_outcome, session))

        skipped = self.scheduler.start(identity)
        if skipped is not None:
            self.status.end_session()
            self.session = None
            return skipped

        self.status.publish(STATUS_TRACKING, session)
        logging.info(
            f"Trackium started for {identity['device_id'] or '<no device id>'} "
            f"reporting to {identity['endpoint_base_url']}"
        )
        return None

    def stop(self) -> None:
        if self.session is None and self.scheduler.state is SessionState.IDLE:
            return

        self.scheduler.stop()

        # Uploads still in flight are abandoned, their outcomes get discarded
        self.status.end_session()
        self.session = None

        in_flight = [thread for thread in self.report_threads if thread.is_alive()]
        if in_flight:
            logging.info(f"Abandoning {len(in_flight)} in-flight uploads")
        self.report_threads = []

        self.status.publish(STATUS_STOPPED)
        logging.info("Trackium stopped")

    def shutdown(self) -> None:
        self.stop()
        self.status.stop()

    def _on_sample(self, sample: LocationSample, identity: DeviceIdentity) -> None:
        self.status.publish(describe_location(sample), self.session)

        self.report_threads = [
            thread for thread in self.report_threads if thread.is_alive()
        ]

        # One thread per sample so a hung upload never holds up the next one
        report_thread = threading.Thread(
            target=self.reporter.report, args=(sample, identity), daemon=True
        )
        report_thread.start()
        self.report_threads.append(report_thread)

    def _on_outcome(self, session: int, outcome: DeliveryOutcome) -> None:
        self.status.publish(describe_outcome(outcome), session)

    def _on_scheduler_outcome(self, outcome: DeliveryOutcome) -> None:
        # Not tied to the session, which ends as soon as start() is refused
        self.status.publish(describe_outcome(outcome))


def build_provider(
    name: str, device: str, baud: int, termux_source: str
) -> Tuple[LocationProvider, LocationPermission]:
    if name == PROVIDER_NMEA:
        return NMEALocationProvider(device, baud), DevicePermission(device)

    if name == PROVIDER_TERMUX:
        return TermuxLocationProvider(termux_source), TermuxPermission()

    raise ValueError(f"Unknown location provider: {name}")


def run(args: argparse.Namespace, store: ConfigStore) -> int:
    provider_name = args.provider or store.get("provider", PROVIDER_NMEA)
    device = args.gps or store.get("gps", DEFAULT_GPS_DEVICE)
    baud = args.baud or int(store.get("baud", DEFAULT_BAUD))
    termux_source = store.get("termux_provider", DEFAULT_SOURCE)
    status_file = args.status_file or store.get("status_file")

    try:
        provider, permission = build_provider(provider_name, device, baud, termux_source)
    except ValueError as e:
        logging.error(str(e))
        return 1

    sinks: List[StatusSink] = [LoggingStatusSink()]
    if status_file:
        sinks.append(StatusFileSink(status_file))

    trackium = TrackiumClient(
        provider,
        permission,
        config_path=store.path,
        status=StatusDispatcher(sinks),
    )

    try:
        skipped = trackium.start()
        if skipped is not None:
            logging.error(f"Tracking not started: {skipped.reason}")
            return 1

        # Keep the main thread alive
        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        logging.info("Shutting down...")
    finally:
        trackium.shutdown()

    return 0


def configure(args: argparse.Namespace, store: ConfigStore) -> int:
    device_id = args.device_id.strip()
    if not device_id:
        logging.error("Device ID must not be empty")
        return 1

    store.set(KEY_DEVICE_ID, device_id)
    if args.url:
        store.set(KEY_NODE_URL, args.url.strip())

    store.save()
    print(f"Saved configuration to {store.path}")
    return 0


def status(args: argparse.Namespace, store: ConfigStore) -> int:
    identity = store.load_identity()
    print(f"Device ID: {identity['device_id'] or '<not configured>'}")
    print(f"Minima node URL: {identity['endpoint_base_url']}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Trackium location companion")
    parser.add_argument(
        "--config",
        "-c",
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--debug", "-v", action="store_true", help="Enable verbose logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run_parser = commands.add_parser("run", help="Track and report location")
    run_parser.add_argument(
        "--provider",
        "-p",
        choices=[PROVIDER_NMEA, PROVIDER_TERMUX],
        help="Location source (default: nmea)",
    )
    run_parser.add_argument(
        "--gps",
        "-g",
        help=f"Serial device path (default: {DEFAULT_GPS_DEVICE})",
    )
    run_parser.add_argument(
        "--baud", "-b", type=int, help=f"Baud rate (default: {DEFAULT_BAUD})"
    )
    run_parser.add_argument(
        "--status-file", help="File that always holds the latest status text"
    )

    configure_parser = commands.add_parser("configure", help="Store device settings")
    configure_parser.add_argument(
        "--device-id", "-d", required=True, help="Device ID from the Trackium MiniDapp"
    )
    configure_parser.add_argument(
        "--url", "-u", help="Minima node URL (default: http://127.0.0.1:9003)"
    )

    commands.add_parser("status", help="Show stored device settings")

    args = parser.parse_args()

    log_level = logging.INFO if args.debug else logging.WARNING
    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(levelname)s - %(message)s"
    )

    try:
        store = ConfigStore.load(args.config)
    except ConfigError as e:
        logging.error(str(e))
        sys.exit(1)

    handlers = {"run": run, "configure": configure, "status": status}

    try:
        sys.exit(handlers[args.command](args, store))
    except ConfigError as e:
        logging.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
