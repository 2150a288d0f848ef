"""
IMU Report Message Schema.

IMU samples are relayed as-is; they are never synchronized or fused.

Wire layout (little-endian, magic included):
    "IMU" tag_addr:u16 system_ts:u64 accel:[u32;3] gyro:[u32;3]
"""

import struct
from dataclasses import dataclass
from typing import Tuple

from .errors import PacketDecodeError


@dataclass(frozen=True)
class ImuReport:
    """
    Raw IMU sample from a tag.

    Attributes:
        tag_addr: Tag address
        system_ts: Monotonic firmware timestamp (microseconds)
        accel: Raw 3-axis acceleration
        gyro: Raw 3-axis angular rate
    """

    MAGIC = b"IMU"
    _LAYOUT = struct.Struct("<HQ3I3I")
    SIZE = len(MAGIC) + _LAYOUT.size

    tag_addr: int
    system_ts: int
    accel: Tuple[int, int, int]
    gyro: Tuple[int, int, int]

    def __post_init__(self):
        if len(self.accel) != 3 or len(self.gyro) != 3:
            raise ValueError("IMU report needs 3 accel and 3 gyro axes")
        object.__setattr__(self, 'accel', tuple(self.accel))
        object.__setattr__(self, 'gyro', tuple(self.gyro))

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ImuReport':
        """
        Parse a record from an unstuffed payload.

        Raises:
            PacketDecodeError: Wrong magic or too few bytes
        """
        if bytes(data[:3]) != cls.MAGIC:
            raise PacketDecodeError(f"Expected {cls.MAGIC!r} magic, got {bytes(data[:3])!r}")
        try:
            fields = cls._LAYOUT.unpack_from(data, len(cls.MAGIC))
        except struct.error as e:
            raise PacketDecodeError(
                f"IMU payload too short: {len(data)} < {cls.SIZE} bytes"
            ) from e
        return cls(
            tag_addr=fields[0],
            system_ts=fields[1],
            accel=fields[2:5],
            gyro=fields[5:8],
        )

    def to_bytes(self) -> bytes:
        """Serialize to the wire layout, magic included."""
        return self.MAGIC + self._LAYOUT.pack(
            self.tag_addr, self.system_ts, *self.accel, *self.gyro
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'tag_addr': self.tag_addr,
            'system_ts': self.system_ts,
            'accel': list(self.accel),
            'gyro': list(self.gyro),
        }
