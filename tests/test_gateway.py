"""
Integration tests for the gateway event loop and serial readers.

Tests cover:
- In-memory streams through reader threads into the pipeline
- Stream failure isolation
- All-streams-failed shutdown
- Cancellation
"""

import io
import threading
import time
from queue import Queue

import pytest

from magic_loc.gateway import MagicLocGateway
from magic_loc.io.serial_source import SerialStreamReader, StreamChunk, StreamFailure
from magic_loc.localization import RangeSynchronizer, TrilaterationSolver
from magic_loc.pipeline import GatewayPipeline, PipelineConfig
from magic_loc.proto import encode_frame

from conftest import make_range_report, make_imu_report


class FailingStream:
    """Byte source whose read() always raises."""

    def read(self, size):
        raise OSError("device disconnected")


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def start_gateway(gateway: MagicLocGateway) -> threading.Thread:
    thread = threading.Thread(target=gateway.run, daemon=True)
    thread.start()
    return thread


@pytest.fixture
def make_gateway(publisher, room_anchor_table):
    def _make(streams, **config_overrides):
        num_streams = len(streams)
        pipeline = GatewayPipeline(
            num_streams,
            publisher,
            TrilaterationSolver(room_anchor_table),
            RangeSynchronizer(num_streams),
            PipelineConfig(**config_overrides),
        )
        return MagicLocGateway(streams, pipeline, poll_timeout_s=0.01)
    return _make


# =============================================================================
# Reader Thread
# =============================================================================


class TestSerialStreamReader:
    """Tests for the per-stream reader."""

    def test_forwards_chunks(self):
        events = Queue()
        stop_event = threading.Event()
        reader = SerialStreamReader(1, io.BytesIO(b"\x01\x02\x03"), events, stop_event)

        reader.start()
        event = events.get(timeout=2.0)
        stop_event.set()
        reader.join(timeout=2.0)

        assert event == StreamChunk(1, b"\x01\x02\x03")
        assert not reader.is_alive

    def test_read_error_becomes_failure_event(self):
        events = Queue()
        reader = SerialStreamReader(0, FailingStream(), events, threading.Event())

        reader.start()
        event = events.get(timeout=2.0)
        reader.join(timeout=2.0)

        assert isinstance(event, StreamFailure)
        assert event.stream_index == 0
        assert isinstance(event.error, OSError)
        assert not reader.is_alive


# =============================================================================
# Gateway Loop
# =============================================================================


class TestMagicLocGateway:
    """Tests for MagicLocGateway.run()."""

    def test_streams_synchronized_and_published(self, make_gateway, publisher):
        streams = [
            io.BytesIO(b"\x13\x37" + encode_frame(make_range_report(7).to_bytes())),
            io.BytesIO(encode_frame(make_range_report(7).to_bytes())),
        ]
        gateway = make_gateway(streams, localize=False)

        thread = start_gateway(gateway)
        published = wait_for(lambda: "ranges" in publisher.topics)
        gateway.stop()
        thread.join(timeout=5.0)

        assert published
        assert not thread.is_alive()
        assert len(publisher.json_payloads("ranges")[0]) == 2

    def test_failed_stream_is_isolated(self, make_gateway, publisher, metrics):
        imu_frames = b"".join(
            encode_frame(make_imu_report(ts).to_bytes()) for ts in (1000, 2000)
        )
        gateway = make_gateway([FailingStream(), io.BytesIO(imu_frames)])

        thread = start_gateway(gateway)
        published = wait_for(lambda: len(publisher.payloads("imu")) == 2)
        failed = wait_for(lambda: gateway.failed_streams == {0})
        still_running = thread.is_alive()
        gateway.stop()
        thread.join(timeout=5.0)

        assert published
        assert failed
        assert still_running
        assert metrics.get_counter('stream_failures') == 1

    def test_all_streams_failed_ends_loop(self, make_gateway, metrics):
        gateway = make_gateway([FailingStream(), FailingStream()])

        thread = start_gateway(gateway)
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert gateway.failed_streams == {0, 1}
        assert metrics.get_counter('stream_failures') == 2
        assert not gateway.running

    def test_stop_before_data(self, make_gateway):
        gateway = make_gateway([io.BytesIO(b"")])

        thread = start_gateway(gateway)
        gateway.stop()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert all(not r.is_alive for r in gateway.readers)

    def test_signal_handler_stops(self, make_gateway):
        gateway = make_gateway([io.BytesIO(b"")])

        gateway._signal_handler(2, None)

        assert not gateway.running

    def test_stream_count_mismatch_raises(self, make_gateway, publisher, room_anchor_table):
        pipeline = GatewayPipeline(2, publisher, TrilaterationSolver(room_anchor_table))

        with pytest.raises(ValueError):
            MagicLocGateway([io.BytesIO(b"")], pipeline)
