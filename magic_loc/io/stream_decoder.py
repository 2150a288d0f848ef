"""
Serial stream frame decoder.

Anchors write frames of the form

    0x00 | 0xFF 0x01 0x00 | rzcobs(payload) | 0x00

onto a byte stream with no other framing, so the gateway may join the stream
at any point and sees line noise between frames. StreamDecoder recovers the
frames with a small state machine:

1. SEEK_DELIMITER: drop everything before the next zero byte
2. VALIDATE_HEADER: check the 3 header bytes after the zero; on mismatch
   skip to the next zero and start over. An empty gap between two zeros
   (one frame's terminator, the next frame's leading zero) is skipped
   without counting a resync
3. SEEK_TERMINATOR: wait for the zero that closes the frame

An emitted frame keeps its leading zero and header but not the terminator.
The terminator stays in the buffer and serves as the leading delimiter of the
next frame.
"""

import logging
from enum import Enum
from typing import Iterator, List, Optional

from magic_loc.metrics import get_metrics

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\x00"
FRAME_HEADER = b"\xff\x01\x00"
FRAME_PREFIX = FRAME_DELIMITER + FRAME_HEADER


class DecoderState(Enum):
    """Decoder position within a frame."""

    SEEK_DELIMITER = "seek_delimiter"
    VALIDATE_HEADER = "validate_header"
    SEEK_TERMINATOR = "seek_terminator"


class StreamDecoder:
    """
    Frame extractor operating on a caller-owned, append-only buffer.

    Usage:
        decoder = StreamDecoder()
        buffer = bytearray()
        buffer.extend(chunk)
        frame = decoder.decode(buffer)  # None until a full frame is buffered

    Each decode() call returns at most one frame and never raises on
    malformed input. A call that throws away a bad header returns None even
    if a good frame follows; call again to make further progress.
    """

    def __init__(self):
        self.state = DecoderState.SEEK_DELIMITER
        self._scan_from = len(FRAME_PREFIX)
        self.metrics = get_metrics()

    def reset(self):
        """Forget any partial frame position."""
        self.state = DecoderState.SEEK_DELIMITER
        self._scan_from = len(FRAME_PREFIX)

    def decode(self, buffer: bytearray) -> Optional[bytes]:
        """
        Try to extract one frame from the front of `buffer`.

        Consumed bytes are removed from `buffer` in place.

        Args:
            buffer: Receive buffer; callers only ever append to it

        Returns:
            Frame bytes (leading zero and header included, terminator
            excluded), or None if no complete frame is available yet
        """
        # States past SEEK_DELIMITER assume the buffer starts on a zero
        if self.state is not DecoderState.SEEK_DELIMITER:
            if not buffer or buffer[0] != 0:
                self.reset()

        if self.state is DecoderState.SEEK_DELIMITER:
            if not buffer:
                return None
            index = buffer.find(FRAME_DELIMITER)
            if index < 0:
                logger.debug(f"No delimiter in {len(buffer)} buffered bytes, discarding")
                buffer.clear()
                return None
            del buffer[:index]
            self.state = DecoderState.VALIDATE_HEADER

        if self.state is DecoderState.VALIDATE_HEADER:
            # Previous terminator followed by the next frame's leading zero
            if len(buffer) >= 2 and buffer[1] == 0:
                del buffer[:1]
                return None
            if len(buffer) < len(FRAME_PREFIX):
                return None
            if bytes(buffer[1:len(FRAME_PREFIX)]) != FRAME_HEADER:
                self._resync(buffer)
                return None
            self.state = DecoderState.SEEK_TERMINATOR
            self._scan_from = len(FRAME_PREFIX)

        # SEEK_TERMINATOR
        index = buffer.find(FRAME_DELIMITER, self._scan_from)
        if index < 0:
            self._scan_from = max(len(FRAME_PREFIX), len(buffer))
            return None

        frame = bytes(buffer[:index])
        del buffer[:index]
        self.reset()
        return frame

    def _resync(self, buffer: bytearray):
        """Drop a bad header up to (not including) the next zero byte."""
        self.metrics.increment_drop('framing_resync')
        index = buffer.find(FRAME_DELIMITER, 1)
        if index < 0:
            buffer.clear()
        else:
            del buffer[:index]
        self.state = DecoderState.SEEK_DELIMITER


class FrameReader:
    """
    Owns a receive buffer and a StreamDecoder for one byte stream.

    Usage:
        reader = FrameReader()
        for frame in reader.feed(chunk):
            handle(frame)
    """

    def __init__(self, decoder: Optional[StreamDecoder] = None):
        self.decoder = decoder or StreamDecoder()
        self.buffer = bytearray()

    def __len__(self) -> int:
        """Number of bytes waiting in the buffer."""
        return len(self.buffer)

    def extend(self, data: bytes):
        """Append received bytes without decoding."""
        self.buffer.extend(data)

    def frames(self) -> Iterator[bytes]:
        """
        Yield every frame that can be decoded from the current buffer.

        Stops once a decode() call neither shrinks the buffer nor moves the
        decoder to another state. Restartable: feed more bytes and iterate
        again.
        """
        while True:
            size_before = len(self.buffer)
            state_before = self.decoder.state
            frame = self.decoder.decode(self.buffer)
            if frame is not None:
                yield frame
                continue
            if len(self.buffer) == size_before and self.decoder.state is state_before:
                return

    def feed(self, data: bytes) -> List[bytes]:
        """Append `data` and return all frames it completes."""
        self.extend(data)
        return list(self.frames())
