"""
Gateway event loop.

One reader thread per byte stream feeds a shared queue; the loop running in
the calling thread is the only consumer and the only caller of
GatewayPipeline.feed().
"""

import logging
import signal
import threading
import time
from queue import Queue, Empty
from typing import List, Optional, Sequence

from magic_loc.io.serial_source import (
    SerialStreamReader,
    StreamChunk,
    StreamEvent,
    StreamFailure,
)
from magic_loc.pipeline import GatewayPipeline
from magic_loc.metrics import get_metrics

logger = logging.getLogger(__name__)


class MagicLocGateway:
    """
    Multiplexes N byte streams into one GatewayPipeline.

    Usage:
        gateway = MagicLocGateway(streams, pipeline)
        gateway.install_signal_handlers()
        gateway.run()          # returns after stop() or when every stream failed

    A stream whose reader raises is marked failed and dropped; the others keep
    running.
    """

    def __init__(
        self,
        streams: Sequence,
        pipeline: GatewayPipeline,
        poll_timeout_s: float = 0.1,
        status_interval_s: Optional[float] = None,
        chunk_size: int = 4096,
    ):
        if len(streams) != pipeline.num_streams:
            raise ValueError(
                f"{len(streams)} streams for a pipeline expecting {pipeline.num_streams}"
            )
        self.streams = list(streams)
        self.pipeline = pipeline
        self.poll_timeout_s = poll_timeout_s
        self.status_interval_s = status_interval_s
        self.metrics = get_metrics()

        self.events: "Queue[StreamEvent]" = Queue()
        self.stop_event = threading.Event()
        self.failed_streams: set = set()
        self.readers: List[SerialStreamReader] = [
            SerialStreamReader(i, stream, self.events, self.stop_event, chunk_size=chunk_size)
            for i, stream in enumerate(self.streams)
        ]

    @property
    def running(self) -> bool:
        return not self.stop_event.is_set()

    def install_signal_handlers(self):
        """Stop on SIGINT/SIGTERM. Must be called from the main thread."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.stop()

    def stop(self):
        """Request the loop to exit. Safe from any thread."""
        self.stop_event.set()

    def run(self):
        """Start the readers and process events until stopped."""
        logger.info(f"Gateway started with {len(self.readers)} stream(s)")
        for reader in self.readers:
            reader.start()

        try:
            self._run_loop()
        finally:
            self.stop()
            for reader in self.readers:
                reader.join(timeout=1.0)
            logger.info("Gateway stopped")

    def _run_loop(self):
        last_status_time = time.monotonic()

        while not self.stop_event.is_set():
            if self.status_interval_s and time.monotonic() - last_status_time > self.status_interval_s:
                self._log_status()
                last_status_time = time.monotonic()

            try:
                event: StreamEvent = self.events.get(timeout=self.poll_timeout_s)
            except Empty:
                continue

            if isinstance(event, StreamChunk):
                self.pipeline.feed(event.stream_index, event.data)
            elif isinstance(event, StreamFailure):
                self._handle_failure(event)
                if len(self.failed_streams) == len(self.readers):
                    logger.error("All streams failed, stopping")
                    return

    def _handle_failure(self, event: StreamFailure):
        self.failed_streams.add(event.stream_index)
        self.metrics.increment('stream_failures')
        logger.error(
            f"Stream {event.stream_index} failed ({event.error}); "
            f"{len(self.readers) - len(self.failed_streams)} stream(s) remaining"
        )

    def _log_status(self):
        snapshot = self.metrics.snapshot()
        c = snapshot.counters
        logger.info(
            f"Status: {c.get('frames_in', 0)} frames, "
            f"{c.get('batches_synchronized', 0)} rounds, "
            f"{snapshot.total_dropped()} dropped, "
            f"FIFO depths {self.pipeline.synchronizer.fifo_depths()}"
        )
