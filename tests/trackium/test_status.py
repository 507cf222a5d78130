import pytest
from unittest import mock
from trackium.outcome import RejectedByServer, Skipped, Success, TransportError
from trackium.status import (
    StatusDispatcher,
    StatusFileSink,
    describe_location,
    describe_outcome,
)


class RecordingSink:
    def __init__(self):
        self.texts = []

    def publish(self, status_text):
        self.texts.append(status_text)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def dispatcher(sink):
    dispatcher = StatusDispatcher([sink])
    dispatcher.start()
    yield dispatcher
    dispatcher.stop()


class TestDescribe:
    def test_location_uses_six_decimals(self, london_sample):
        assert describe_location(london_sample) == "Location: 51.507400, -0.127800"

    @pytest.mark.parametrize(
        "outcome, text",
        [
            (Success(), "Location uploaded ✓"),
            (RejectedByServer(403), "Upload failed: 403"),
            (TransportError("Connection refused"), "Network error: Connection refused"),
            (TransportError("bad value", network=False), "Error: bad value"),
            (Skipped("no_device_id"), "No Device ID configured"),
            (Skipped("permission_denied"), "Location permission not granted"),
            (Skipped("other"), "Skipped: other"),
        ],
    )
    def test_outcome_text(self, outcome, text):
        assert describe_outcome(outcome) == text

    def test_unknown_outcome(self):
        with pytest.raises(TypeError):
            describe_outcome("uploaded")


class TestStatusDispatcher:
    def test_texts_applied_in_order(self, dispatcher, sink):
        for i in range(50):
            dispatcher.publish(f"status {i}")
        dispatcher.flush()

        assert sink.texts == [f"status {i}" for i in range(50)]
        assert dispatcher.current == "status 49"

    def test_default_sink_logs(self):
        dispatcher = StatusDispatcher()
        dispatcher.start()

        with mock.patch("trackium.status.logger") as mock_logger:
            dispatcher.publish("Tracking location...")
            dispatcher.flush()

        dispatcher.stop()
        mock_logger.info.assert_called_once_with("Status: Tracking location...")

    def test_session_texts_shown_while_active(self, dispatcher, sink):
        session = dispatcher.begin_session()
        dispatcher.publish("Location uploaded ✓", session)
        dispatcher.flush()

        assert sink.texts == ["Location uploaded ✓"]

    def test_texts_from_ended_session_are_discarded(self, dispatcher, sink):
        session = dispatcher.begin_session()
        dispatcher.publish("Tracking location...", session)
        dispatcher.flush()

        dispatcher.end_session()
        dispatcher.publish("Tracking stopped")
        dispatcher.publish("Upload failed: 500", session)
        dispatcher.flush()

        assert sink.texts == ["Tracking location...", "Tracking stopped"]
        assert dispatcher.current == "Tracking stopped"

    def test_texts_from_older_session_are_discarded(self, dispatcher, sink):
        first = dispatcher.begin_session()
        second = dispatcher.begin_session()

        assert second != first

        dispatcher.publish("Location uploaded ✓", first)
        dispatcher.publish("Tracking location...", second)
        dispatcher.flush()

        assert sink.texts == ["Tracking location..."]

    def test_failing_sink_does_not_stop_updates(self, sink):
        broken = mock.MagicMock()
        broken.publish.side_effect = OSError("disk full")
        dispatcher = StatusDispatcher([broken, sink])
        dispatcher.start()

        dispatcher.publish("one")
        dispatcher.publish("two")
        dispatcher.flush()
        dispatcher.stop()

        assert sink.texts == ["one", "two"]
        assert broken.publish.call_count == 2

    def test_start_is_idempotent(self, dispatcher):
        worker = dispatcher.worker_thread
        dispatcher.start()

        assert dispatcher.worker_thread is worker

    def test_stop_without_start(self, sink):
        StatusDispatcher([sink]).stop()


class TestStatusFileSink:
    def test_file_holds_latest_text(self, tmp_path):
        path = tmp_path / "status"
        sink = StatusFileSink(str(path))

        sink.publish("Tracking location...")
        sink.publish("Upload failed: 403")

        assert path.read_text(encoding="utf-8") == "Upload failed: 403\n"
        assert not (tmp_path / "status.tmp").exists()
