"""
Unit tests for the serial stream frame decoder.

Tests cover:
- Single frame, leading noise and bad headers (one emission per call)
- Captured serial data with several resynchronizations
- Chunked and truncated input through FrameReader
- Framing resync counting
"""

import pytest

from magic_loc.io.stream_decoder import (
    DecoderState,
    StreamDecoder,
    FrameReader,
    FRAME_PREFIX,
)
from magic_loc.proto import encode_frame, decode_frame, RangeReport

from conftest import make_range_report


# Raw bytes captured from an anchor serial port
CAPTURED_STREAM = bytes([
    0x0, 0x30, 0x12, 0x53, 0x6a, 0x7f, 0x0, 0xff, 0x0, 0x45, 0x7e, 0x0, 0xff, 0x1, 0x0,
    0x52, 0x4e, 0x47, 0x34, 0x1, 0x60, 0xf0, 0xff, 0x1f, 0xf0, 0x3f, 0xff, 0x7e, 0xf0,
    0xff, 0x7c, 0xf0, 0xff, 0x79, 0xf0, 0xff, 0x73, 0xf0, 0xff, 0x67, 0xf0, 0xff, 0x4f,
    0xf0, 0xff, 0x1f, 0x0, 0x0, 0xff, 0x0, 0x30, 0x12, 0x59, 0x6a, 0x7f, 0x0, 0xff, 0x0,
    0x45, 0x7e, 0x0, 0xff, 0x0, 0x32, 0xd, 0x59, 0xea, 0xc5, 0xa, 0xa, 0x5f, 0x6c, 0x7e,
    0x0, 0xff, 0x1, 0x0, 0x52, 0x4e, 0x47, 0x99, 0x1, 0xa4, 0x20, 0xb5, 0xcd, 0x11, 0xa8,
    0x95, 0x53, 0x40, 0xda, 0x5f, 0x25, 0xe5, 0x98, 0x7a, 0x55, 0x40, 0x5, 0xa5, 0x2a,
    0xc6, 0x15, 0x23, 0x54, 0x40, 0xb0,
])

CAPTURED_FRAME = bytes([
    0, 255, 1, 0, 82, 78, 71, 52, 1, 96, 240, 255, 31, 240, 63, 255, 126, 240, 255,
    124, 240, 255, 121, 240, 255, 115, 240, 255, 103, 240, 255, 79, 240, 255, 31,
])

MINIMAL_FRAME = bytes([0x00, 0xFF, 0x01, 0x00, 0x02, 0x03])


# =============================================================================
# StreamDecoder
# =============================================================================


class TestStreamDecoder:
    """Tests for single decode() calls."""

    def test_empty_buffer(self):
        decoder = StreamDecoder()
        buffer = bytearray()

        assert decoder.decode(buffer) is None
        assert decoder.state is DecoderState.SEEK_DELIMITER

    def test_single_frame(self):
        """Terminator is excluded from the frame and left in the buffer."""
        decoder = StreamDecoder()
        buffer = bytearray(MINIMAL_FRAME + b"\x00")

        assert decoder.decode(buffer) == MINIMAL_FRAME
        assert buffer == bytearray(b"\x00")
        assert decoder.state is DecoderState.SEEK_DELIMITER

    def test_noise_and_bad_header(self):
        """Each bad header costs one call returning None."""
        decoder = StreamDecoder()
        buffer = bytearray(bytes([0x11, 0x22, 0x00, 0x01, 0x02, 0x03, 0x00]) + MINIMAL_FRAME + b"\x00")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray(b"\0\0\xff\x01\x00\x02\x03\0")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray(b"\0\xff\x01\x00\x02\x03\0")

        assert decoder.decode(buffer) == MINIMAL_FRAME

    def test_bad_header_sharing_delimiter(self):
        """A good frame may start on the zero that ended the garbage."""
        decoder = StreamDecoder()
        buffer = bytearray(bytes([0x11, 0x22, 0x00, 0x01, 0x02, 0x03]) + MINIMAL_FRAME + b"\x00")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray(b"\0\xff\x01\x00\x02\x03\0")

        assert decoder.decode(buffer) == MINIMAL_FRAME
        assert buffer == bytearray(b"\0")

    def test_no_delimiter_clears_buffer(self):
        decoder = StreamDecoder()
        buffer = bytearray(b"\x11\x22\x33")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray()

    def test_short_header_waits(self):
        decoder = StreamDecoder()
        buffer = bytearray(b"\x00\xff\x01")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray(b"\x00\xff\x01")
        assert decoder.state is DecoderState.VALIDATE_HEADER

    def test_missing_terminator_keeps_bytes(self):
        decoder = StreamDecoder()
        buffer = bytearray(FRAME_PREFIX + b"\x05\x06")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray(FRAME_PREFIX + b"\x05\x06")
        assert decoder.state is DecoderState.SEEK_TERMINATOR

        buffer.extend(b"\x07\x00")
        assert decoder.decode(buffer) == FRAME_PREFIX + b"\x05\x06\x07"

    def test_bad_header_without_next_zero_clears(self):
        decoder = StreamDecoder()
        buffer = bytearray(b"\x00\x11\x22\x33\x44")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray()

    def test_bad_header_counts_resync(self, metrics):
        decoder = StreamDecoder()
        buffer = bytearray(bytes([0x00, 0x01, 0x02, 0x03, 0x00]))

        decoder.decode(buffer)

        assert metrics.get_drop_count('framing_resync') == 1

    def test_empty_gap_between_frames_is_not_a_resync(self, metrics):
        """Terminator then leading zero: one byte skipped, nothing counted."""
        decoder = StreamDecoder()
        buffer = bytearray(b"\x00" + MINIMAL_FRAME + b"\x00")

        assert decoder.decode(buffer) is None
        assert buffer == bytearray(MINIMAL_FRAME + b"\x00")

        assert decoder.decode(buffer) == MINIMAL_FRAME
        assert metrics.get_drop_count('framing_resync') == 0

    def test_captured_stream(self):
        """Three header mismatches, then the RNG frame on the fourth call."""
        decoder = StreamDecoder()
        buffer = bytearray(CAPTURED_STREAM)

        assert decoder.decode(buffer) is None
        assert decoder.decode(buffer) is None
        assert decoder.decode(buffer) is None
        assert decoder.decode(buffer) == CAPTURED_FRAME


# =============================================================================
# FrameReader
# =============================================================================


class TestFrameReader:
    """Tests for the buffering frame iterator."""

    def test_captured_stream_yields_one_frame(self, metrics):
        reader = FrameReader()

        frames = reader.feed(CAPTURED_STREAM)

        assert frames == [CAPTURED_FRAME]
        # Second RNG frame is still waiting for its terminator
        assert bytes(reader.buffer).startswith(b"\x00\xff\x01\x00RNG\x99")
        assert reader.decoder.state is DecoderState.SEEK_TERMINATOR
        assert metrics.get_drop_count('framing_resync') > 0

    def test_captured_frame_decodes_as_short_range_report(self):
        """The captured frame is 70 bytes once unstuffed, too short for RNG."""
        with pytest.raises(ValueError, match="too short"):
            decode_frame(CAPTURED_FRAME)

    def test_frame_in_noise_any_chunking(self):
        """One envelope in noise gives exactly one frame however it is split."""
        record = make_range_report(trigger_txts=42).to_bytes()
        stream = b"\x13\x37\x00\x42\x00" + encode_frame(record) + b"\x99\x98"

        for chunk_size in (1, 2, 3, 7, 16, len(stream)):
            reader = FrameReader()
            frames = []
            for i in range(0, len(stream), chunk_size):
                frames.extend(reader.feed(stream[i:i + chunk_size]))

            assert len(frames) == 1, f"chunk size {chunk_size}"
            assert decode_frame(frames[0]) == make_range_report(trigger_txts=42)

    def test_truncated_frame_waits_for_terminator(self):
        frame = encode_frame(make_range_report(trigger_txts=1).to_bytes())
        reader = FrameReader()

        assert reader.feed(frame[:-1]) == []
        assert reader.feed(frame[-1:]) == [frame[:-1]]

    def test_back_to_back_frames_share_delimiter(self):
        """Terminator of one frame is the leading zero of the next."""
        first = encode_frame(make_range_report(trigger_txts=1).to_bytes())
        second = encode_frame(make_range_report(trigger_txts=2).to_bytes())
        stream = first + second[1:]

        frames = FrameReader().feed(stream)

        assert [decode_frame(f).trigger_txts for f in frames] == [1, 2]

    def test_clean_stream_counts_no_drops(self, metrics):
        """Complete envelopes back to back, each with its own leading zero."""
        stream = b"".join(
            encode_frame(make_range_report(trigger_txts=key).to_bytes()) for key in range(10)
        )

        frames = FrameReader().feed(stream)

        assert [decode_frame(f).trigger_txts for f in frames] == list(range(10))
        assert metrics.get_drop_count('framing_resync') == 0
        assert metrics.snapshot().total_dropped() == 0

    def test_frames_is_restartable(self):
        reader = FrameReader()
        frame = encode_frame(make_range_report(trigger_txts=5).to_bytes())

        reader.extend(frame[:10])
        assert list(reader.frames()) == []

        reader.extend(frame[10:])
        frames = list(reader.frames())
        assert len(frames) == 1
        assert isinstance(decode_frame(frames[0]), RangeReport)
