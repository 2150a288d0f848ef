"""
Range Report Message Schema.

Defines the RNG packet sent by each anchor after a ranging round, and the
synchronized batch the gateway builds from one report per anchor.

Wire layout (little-endian, magic included):
    "RNG" tag_addr:u16 system_ts:u64 seq_num:u8 trigger_txts:u64 ranges:[f64;8]
"""

import math
import struct
from dataclasses import dataclass, replace
from typing import Tuple

from .errors import PacketDecodeError

NUM_RANGES = 8


@dataclass(frozen=True)
class RangeReport:
    """
    Ranges from one tag to every reference anchor, as seen by one anchor stream.

    Attributes:
        tag_addr: Tag address
        system_ts: Monotonic firmware timestamp (microseconds)
        seq_num: Wrapping 8-bit sequence counter
        trigger_txts: Transmit timestamp of the originating poll
        ranges: Distance to each reference anchor slot

    Notes:
        - trigger_txts is the correlation key across anchors, not seq_num
        - Invalid ranges are non-finite or above the sentinel threshold
    """

    MAGIC = b"RNG"
    _LAYOUT = struct.Struct(f"<HQBQ{NUM_RANGES}d")
    SIZE = len(MAGIC) + _LAYOUT.size

    tag_addr: int
    system_ts: int
    seq_num: int
    trigger_txts: int
    ranges: Tuple[float, ...]

    def __post_init__(self):
        """Validate report after initialization."""
        if len(self.ranges) != NUM_RANGES:
            raise ValueError(
                f"Range report needs {NUM_RANGES} ranges, got {len(self.ranges)}"
            )
        # Normalize lists coming from callers
        object.__setattr__(self, 'ranges', tuple(float(r) for r in self.ranges))

    @classmethod
    def from_bytes(cls, data: bytes) -> 'RangeReport':
        """
        Parse a record from an unstuffed payload.

        Trailing bytes beyond the layout are ignored.

        Raises:
            PacketDecodeError: Wrong magic or too few bytes
        """
        if bytes(data[:3]) != cls.MAGIC:
            raise PacketDecodeError(f"Expected {cls.MAGIC!r} magic, got {bytes(data[:3])!r}")
        try:
            fields = cls._LAYOUT.unpack_from(data, len(cls.MAGIC))
        except struct.error as e:
            raise PacketDecodeError(
                f"RNG payload too short: {len(data)} < {cls.SIZE} bytes"
            ) from e
        tag_addr, system_ts, seq_num, trigger_txts = fields[:4]
        return cls(
            tag_addr=tag_addr,
            system_ts=system_ts,
            seq_num=seq_num,
            trigger_txts=trigger_txts,
            ranges=fields[4:],
        )

    def to_bytes(self) -> bytes:
        """Serialize to the wire layout, magic included."""
        return self.MAGIC + self._LAYOUT.pack(
            self.tag_addr,
            self.system_ts,
            self.seq_num,
            self.trigger_txts,
            *self.ranges,
        )

    def with_bias(self, bias: float) -> 'RangeReport':
        """Return a copy with `bias` subtracted from every range."""
        return replace(self, ranges=tuple(r - bias for r in self.ranges))

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (non-finite ranges become None)."""
        return {
            'tag_addr': self.tag_addr,
            'system_ts': self.system_ts,
            'seq_num': self.seq_num,
            'trigger_txts': self.trigger_txts,
            'ranges': [r if math.isfinite(r) else None for r in self.ranges],
        }


@dataclass(frozen=True)
class SynchronizedBatch:
    """
    One RangeReport per anchor stream sharing a trigger_txts.

    Attributes:
        trigger_txts: Common correlation key
        reports: Reports ordered by anchor index
    """

    trigger_txts: int
    reports: Tuple[RangeReport, ...]

    def __post_init__(self):
        """Validate that every report carries the batch key."""
        object.__setattr__(self, 'reports', tuple(self.reports))
        for report in self.reports:
            if report.trigger_txts != self.trigger_txts:
                raise ValueError(
                    f"Report key {report.trigger_txts} does not match batch key {self.trigger_txts}"
                )

    def __len__(self) -> int:
        return len(self.reports)

    def __iter__(self):
        return iter(self.reports)

    def with_bias(self, bias: float) -> 'SynchronizedBatch':
        """Return a copy with `bias` subtracted from every range of every report."""
        return SynchronizedBatch(
            trigger_txts=self.trigger_txts,
            reports=tuple(r.with_bias(bias) for r in self.reports),
        )
