"""
Packet dispatch.

Every unstuffed payload starts with a 3-byte ASCII magic naming its record
type. decode_packet() looks the magic up in PACKET_TYPES and hands the
payload to that record's parser.
"""

from typing import Dict, Type, Union

from magic_loc.io.rzcobs import unstuff, stuff
from magic_loc.io.stream_decoder import FRAME_PREFIX, FRAME_DELIMITER

from .errors import UnknownPacketError
from .range_report import RangeReport
from .imu_report import ImuReport
from .cir_report import CirReport

Packet = Union[RangeReport, ImuReport, CirReport]

MAGIC_LENGTH = 3

PACKET_TYPES: Dict[bytes, Type] = {
    RangeReport.MAGIC: RangeReport,
    ImuReport.MAGIC: ImuReport,
    CirReport.MAGIC: CirReport,
}


def decode_packet(payload: bytes) -> Packet:
    """
    Decode an unstuffed payload into a typed record.

    Args:
        payload: Unstuffed bytes, magic first

    Returns:
        RangeReport, ImuReport or CirReport

    Raises:
        UnknownPacketError: Magic is not in PACKET_TYPES
        PacketDecodeError: Payload too short for its record layout
    """
    magic = bytes(payload[:MAGIC_LENGTH])
    packet_type = PACKET_TYPES.get(magic)
    if packet_type is None:
        raise UnknownPacketError(f"Unknown packet magic {magic!r}")
    return packet_type.from_bytes(payload)


def decode_frame(frame: bytes) -> Packet:
    """
    Unstuff and decode a raw frame as emitted by StreamDecoder.

    The frame still carries the leading delimiter and header; the terminator
    has already been stripped.

    Raises:
        UnstuffError: Stuffed payload is corrupted
        UnknownPacketError, PacketDecodeError: see decode_packet()
    """
    return decode_packet(unstuff(bytes(frame[len(FRAME_PREFIX):])))


def encode_frame(record: bytes) -> bytes:
    """Wrap record bytes in a complete wire envelope, both delimiters included."""
    return FRAME_PREFIX + stuff(record) + FRAME_DELIMITER
