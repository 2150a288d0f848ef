"""
Serial byte sources.

One SerialStreamReader thread per anchor link. Readers only block on I/O and
hand raw chunks to the gateway loop through a shared queue; all decoding
happens on the consumer side.
"""

import logging
import threading
from dataclasses import dataclass
from queue import Queue
from typing import Optional, Union

import serial

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamChunk:
    """Bytes received on one stream."""

    stream_index: int
    data: bytes


@dataclass(frozen=True)
class StreamFailure:
    """A stream's reader stopped because of an I/O error."""

    stream_index: int
    error: BaseException


StreamEvent = Union[StreamChunk, StreamFailure]


def open_serial_stream(
    port: str,
    baud_rate: int = 921600,
    timeout_s: float = 0.01,
    low_latency: bool = True,
    clear_input: bool = True,
) -> serial.Serial:
    """
    Open and configure an anchor serial link.

    Args:
        port: Device path (e.g. /dev/ttyACM0)
        baud_rate: Line rate
        timeout_s: Read timeout, bounds how long a reader blocks
        low_latency: Request ASYNC_LOW_LATENCY where the platform supports it
        clear_input: Drop anything buffered before the gateway started

    Returns:
        Open serial.Serial

    Raises:
        serial.SerialException: Device cannot be opened
    """
    stream = serial.Serial(port, baud_rate, timeout=timeout_s)

    if low_latency:
        set_low_latency = getattr(stream, 'set_low_latency_mode', None)
        if set_low_latency is None:
            logger.warning(f"{port}: low latency mode not supported on this platform")
        else:
            try:
                set_low_latency(True)
            except (OSError, ValueError) as e:
                logger.warning(f"{port}: could not enable low latency mode: {e}")

    if clear_input:
        stream.reset_input_buffer()

    logger.info(f"Opened {port} at {baud_rate} baud")
    return stream


class SerialStreamReader:
    """
    Background reader forwarding one stream's bytes into an event queue.

    Works with any object exposing read(n); in_waiting is used when present
    so that a read returns everything already buffered by the driver.
    End of stream (an empty read on a source without a timeout) is not an
    error: the reader idles until stopped.

    Usage:
        events = Queue()
        reader = SerialStreamReader(0, stream, events, stop_event)
        reader.start()
    """

    def __init__(
        self,
        stream_index: int,
        stream,
        events: Queue,
        stop_event: threading.Event,
        chunk_size: int = 4096,
        idle_wait_s: float = 0.01,
        name: Optional[str] = None,
    ):
        self.stream_index = stream_index
        self.stream = stream
        self.events = events
        self.stop_event = stop_event
        self.chunk_size = chunk_size
        self.idle_wait_s = idle_wait_s
        self.name = name or f"stream-{stream_index}"
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Start the reader thread."""
        self._thread = threading.Thread(target=self._read_loop, name=self.name, daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None):
        """Wait for the reader thread to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _read_size(self) -> int:
        waiting = getattr(self.stream, 'in_waiting', 0) or 0
        return min(max(1, waiting), self.chunk_size) if waiting else self.chunk_size

    def _read_loop(self):
        """Read until stopped or the stream raises."""
        logger.debug(f"{self.name}: reader started")
        while not self.stop_event.is_set():
            try:
                data = self.stream.read(self._read_size())
            except Exception as e:
                logger.error(f"{self.name}: read failed: {e}")
                self.events.put(StreamFailure(self.stream_index, e))
                return

            if data:
                self.events.put(StreamChunk(self.stream_index, bytes(data)))
            else:
                self.stop_event.wait(self.idle_wait_s)
        logger.debug(f"{self.name}: reader stopped")
