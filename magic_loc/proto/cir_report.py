"""
Channel Impulse Response (CIR) Report Message Schema.

The anchor firmware dumps a 16-sample window of the accumulator around the
first path. Each complex sample is two 24-bit two's-complement integers.

Wire layout (little-endian, magic included):
    "CIR" src_addr:u16 system_ts:u64 seq_num:u8 ip_poa:u16 fp_index:u16
          start_index:u16 cir_size:u16 cir:[(real:i24, imag:i24);16]
"""

import struct
from dataclasses import dataclass
from typing import Tuple

from .errors import PacketDecodeError

CIR_WINDOW = 16
SAMPLE_WIDTH = 3  # bytes per component

_INT24_MIN = -(1 << 23)
_INT24_MAX = (1 << 23) - 1


@dataclass(frozen=True)
class RawCirSample:
    """One CIR tap as raw little-endian 24-bit components."""

    real: bytes
    imag: bytes

    def __post_init__(self):
        if len(self.real) != SAMPLE_WIDTH or len(self.imag) != SAMPLE_WIDTH:
            raise ValueError("CIR sample components must be 3 bytes each")
        object.__setattr__(self, 'real', bytes(self.real))
        object.__setattr__(self, 'imag', bytes(self.imag))

    @classmethod
    def from_ints(cls, real: int, imag: int) -> 'RawCirSample':
        """Pack two signed integers in [-2^23, 2^23) into a raw sample."""
        for value in (real, imag):
            if not _INT24_MIN <= value <= _INT24_MAX:
                raise ValueError(f"CIR component out of 24-bit range: {value}")
        return cls(
            real=real.to_bytes(SAMPLE_WIDTH, 'little', signed=True),
            imag=imag.to_bytes(SAMPLE_WIDTH, 'little', signed=True),
        )

    def to_complex(self) -> complex:
        """Sign-extend both components and combine them."""
        return complex(
            int.from_bytes(self.real, 'little', signed=True),
            int.from_bytes(self.imag, 'little', signed=True),
        )


@dataclass(frozen=True)
class CirReport:
    """
    Raw CIR dump as received from an anchor.

    Attributes:
        src_addr: Source address of the ranging frame
        system_ts: Monotonic firmware timestamp (microseconds)
        seq_num: Wrapping 8-bit sequence counter
        ip_poa: Phase of arrival
        fp_index: First path index
        start_index: Accumulator index of the first sample in the window
        cir_size: Accumulator length
        cir: 16 raw samples
    """

    MAGIC = b"CIR"
    _HEADER = struct.Struct("<HQBHHHH")
    SIZE = len(MAGIC) + _HEADER.size + CIR_WINDOW * 2 * SAMPLE_WIDTH

    src_addr: int
    system_ts: int
    seq_num: int
    ip_poa: int
    fp_index: int
    start_index: int
    cir_size: int
    cir: Tuple[RawCirSample, ...]

    def __post_init__(self):
        if len(self.cir) != CIR_WINDOW:
            raise ValueError(f"CIR report needs {CIR_WINDOW} samples, got {len(self.cir)}")
        object.__setattr__(self, 'cir', tuple(self.cir))

    @classmethod
    def from_bytes(cls, data: bytes) -> 'CirReport':
        """
        Parse a record from an unstuffed payload.

        Raises:
            PacketDecodeError: Wrong magic or too few bytes
        """
        if bytes(data[:3]) != cls.MAGIC:
            raise PacketDecodeError(f"Expected {cls.MAGIC!r} magic, got {bytes(data[:3])!r}")
        if len(data) < cls.SIZE:
            raise PacketDecodeError(f"CIR payload too short: {len(data)} < {cls.SIZE} bytes")

        header = cls._HEADER.unpack_from(data, len(cls.MAGIC))
        offset = len(cls.MAGIC) + cls._HEADER.size
        samples = []
        for _ in range(CIR_WINDOW):
            real = bytes(data[offset:offset + SAMPLE_WIDTH])
            imag = bytes(data[offset + SAMPLE_WIDTH:offset + 2 * SAMPLE_WIDTH])
            samples.append(RawCirSample(real=real, imag=imag))
            offset += 2 * SAMPLE_WIDTH

        return cls(*header, cir=tuple(samples))

    def to_bytes(self) -> bytes:
        """Serialize to the wire layout, magic included."""
        header = self._HEADER.pack(
            self.src_addr,
            self.system_ts,
            self.seq_num,
            self.ip_poa,
            self.fp_index,
            self.start_index,
            self.cir_size,
        )
        body = b''.join(s.real + s.imag for s in self.cir)
        return self.MAGIC + header + body

    def convert(self) -> 'ConvertedCirReport':
        """Sign-extend the samples into a ConvertedCirReport."""
        return ConvertedCirReport(
            src_addr=self.src_addr,
            system_ts=self.system_ts,
            seq_num=self.seq_num,
            ip_poa=self.ip_poa,
            fp_index=self.fp_index,
            start_index=self.start_index,
            cir_size=self.cir_size,
            cir=tuple(s.to_complex() for s in self.cir),
        )


@dataclass(frozen=True)
class ConvertedCirReport:
    """CIR report with samples as complex floats, ready for output."""

    src_addr: int
    system_ts: int
    seq_num: int
    ip_poa: int
    fp_index: int
    start_index: int
    cir_size: int
    cir: Tuple[complex, ...]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization; samples become [re, im]."""
        return {
            'src_addr': self.src_addr,
            'system_ts': self.system_ts,
            'seq_num': self.seq_num,
            'ip_poa': self.ip_poa,
            'fp_index': self.fp_index,
            'start_index': self.start_index,
            'cir_size': self.cir_size,
            'cir': [[c.real, c.imag] for c in self.cir],
        }
