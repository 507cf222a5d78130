from typing import Callable, Optional
import requests

from trackium.logger import get_logger
from trackium.position import DeviceIdentity, LocationSample
from trackium.protocol import build_payload, encode_payload, update_url, CONTENT_TYPE
from trackium.outcome import (
    DeliveryOutcome,
    RejectedByServer,
    Skipped,
    Success,
    TransportError,
    REASON_NO_DEVICE_ID,
)

# Only connecting is bounded, a server that accepts and never answers can hold a report open
CONNECT_TIMEOUT_SECONDS = 10.0

logger = get_logger()

OutcomeCallback = Callable[[DeliveryOutcome], None]


class Reporter:
    """
    Delivers one location sample per call to the node's update endpoint.

    Each call makes at most one POST and never retries; failed samples are
    dropped. Whatever happens, the outcome is returned and handed to the
    ``notify`` callback exactly once.
    """

    def __init__(
        self,
        notify: Optional[OutcomeCallback] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    ):
        self.notify = notify
        self.connect_timeout = connect_timeout

    def report(self, sample: LocationSample, identity: DeviceIdentity) -> DeliveryOutcome:
        outcome = self._deliver(sample, identity)

        if self.notify is not None:
            self.notify(outcome)

        return outcome

    def _deliver(
        self, sample: LocationSample, identity: DeviceIdentity
    ) -> DeliveryOutcome:
        device_id = identity["device_id"]
        if not device_id:
            logger.warning("No device ID configured, skipping upload")
            return Skipped(REASON_NO_DEVICE_ID)

        url = update_url(identity["endpoint_base_url"])

        try:
            body = encode_payload(build_payload(sample, device_id))

            with requests.post(
                url,
                data=body,
                headers={"Content-Type": CONTENT_TYPE},
                timeout=(self.connect_timeout, None),
            ) as response:
                status_code = response.status_code

        except requests.RequestException as e:
            logger.warning(f"Network error posting location to {url}: {e}")
            return TransportError(str(e))
        except Exception as e:
            logger.error(f"Error sending location to {url}: {e}")
            return TransportError(str(e), network=False)

        if 200 <= status_code <= 299:
            logger.info(f"Location sent successfully: {status_code}")
            return Success()

        logger.warning(f"Server rejected location: {status_code}")
        return RejectedByServer(status_code)
