"""
Protocol Module: Packet records, dispatch and topic payloads.

Records are fixed-layout little-endian structures with a 3-byte magic:
- RNG: RangeReport
- IMU: ImuReport
- CIR: CirReport
"""

from .errors import PacketDecodeError, UnknownPacketError
from .range_report import RangeReport, SynchronizedBatch, NUM_RANGES
from .imu_report import ImuReport
from .cir_report import CirReport, RawCirSample, ConvertedCirReport, CIR_WINDOW
from .position_estimate import PositionEstimate, FixType, create_no_fix
from .packet import Packet, PACKET_TYPES, decode_packet, decode_frame, encode_frame
from .serialization import (
    FORMAT_JSON,
    FORMAT_BINARY,
    serialize_ranges,
    serialize_points,
    serialize_imu,
    serialize_cir,
)

__all__ = [
    # Errors
    'PacketDecodeError',
    'UnknownPacketError',
    # Records
    'RangeReport',
    'SynchronizedBatch',
    'NUM_RANGES',
    'ImuReport',
    'CirReport',
    'RawCirSample',
    'ConvertedCirReport',
    'CIR_WINDOW',
    'PositionEstimate',
    'FixType',
    'create_no_fix',
    # Dispatch
    'Packet',
    'PACKET_TYPES',
    'decode_packet',
    'decode_frame',
    'encode_frame',
    # Payloads
    'FORMAT_JSON',
    'FORMAT_BINARY',
    'serialize_ranges',
    'serialize_points',
    'serialize_imu',
    'serialize_cir',
]
