"""
Topic payload serialization.

JSON is the default wire format. Non-finite floats become null so that every
payload is strict JSON. Ranges and IMU can also be sent as concatenated
binary records (the same layout the anchors put on the serial link).
"""

import json
import math
from typing import Any, Iterable

from .range_report import SynchronizedBatch
from .imu_report import ImuReport
from .cir_report import ConvertedCirReport
from .position_estimate import PositionEstimate

FORMAT_JSON = "json"
FORMAT_BINARY = "binary"
FORMATS = (FORMAT_JSON, FORMAT_BINARY)


def _sanitize(value: Any) -> Any:
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {k: _sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    return value


def to_json_bytes(obj: Any) -> bytes:
    """Encode to compact UTF-8 JSON with non-finite floats as null."""
    return json.dumps(_sanitize(obj), separators=(',', ':'), allow_nan=False).encode('utf-8')


def _check_format(fmt: str):
    if fmt not in FORMATS:
        raise ValueError(f"Unknown payload format '{fmt}', expected one of {FORMATS}")


def serialize_ranges(batch: SynchronizedBatch, fmt: str = FORMAT_JSON) -> bytes:
    """Payload for the ranges topic: one entry per anchor, anchor order kept."""
    _check_format(fmt)
    if fmt == FORMAT_BINARY:
        return b''.join(r.to_bytes() for r in batch.reports)
    return to_json_bytes([r.to_dict() for r in batch.reports])


def serialize_points(estimates: Iterable[PositionEstimate]) -> bytes:
    """Payload for the points topic: [[tag_addr, [x, y, z]], ...]."""
    return to_json_bytes([e.to_pair() for e in estimates])


def serialize_imu(report: ImuReport, fmt: str = FORMAT_JSON) -> bytes:
    """Payload for the imu topic."""
    _check_format(fmt)
    if fmt == FORMAT_BINARY:
        return report.to_bytes()
    return to_json_bytes(report.to_dict())


def serialize_cir(report: ConvertedCirReport) -> bytes:
    """Payload for the cir topic. Always JSON."""
    return to_json_bytes(report.to_dict())
