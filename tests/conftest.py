"""
Pytest configuration and shared fixtures for magic-loc-central tests.

This module provides reusable record builders, an in-memory publish sink and
anchor layouts for testing framing, synchronization, trilateration and the
gateway pipeline.
"""

import sys
import math
import json
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from magic_loc.metrics import reset_metrics, get_metrics
from magic_loc.proto import RangeReport, ImuReport, CirReport, RawCirSample, CIR_WINDOW
from magic_loc.localization import AnchorCoordinateTable


# =============================================================================
# Metrics Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """
    Give every test its own metrics singleton.

    Components capture get_metrics() at construction, so this runs before
    any fixture that builds them.
    """
    reset_metrics()
    yield get_metrics()


@pytest.fixture
def metrics(fresh_metrics):
    """The metrics collector used by components built in this test."""
    return fresh_metrics


# =============================================================================
# Publish Sink
# =============================================================================


class RecordingPublisher:
    """In-memory publish sink keeping every (topic, payload) pair."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.messages: List[Tuple[str, bytes]] = []

    def publish(self, topic: str, payload: bytes) -> bool:
        self.messages.append((topic, payload))
        return self.accept

    def payloads(self, topic: str) -> List[bytes]:
        return [p for t, p in self.messages if t == topic]

    def json_payloads(self, topic: str) -> list:
        return [json.loads(p) for p in self.payloads(topic)]

    @property
    def topics(self) -> List[str]:
        return [t for t, _ in self.messages]


@pytest.fixture
def publisher() -> RecordingPublisher:
    """Publish sink that accepts every message."""
    return RecordingPublisher()


# =============================================================================
# Anchor Layout Fixtures
# =============================================================================


@pytest.fixture
def unit_cube_points() -> List[Tuple[float, float, float]]:
    """
    Unit cube anchor layout.

    Four non-coplanar corners plus the far corner (1, 1, 1), which is also
    the target of the exact-distance test case.
    """
    return [
        (0.0, 0.0, 0.0),
        (1.0, 0.0, 0.0),
        (0.0, 1.0, 0.0),
        (0.0, 0.0, 1.0),
        (1.0, 1.0, 1.0),
    ]


@pytest.fixture
def room_anchor_table() -> AnchorCoordinateTable:
    """Eight anchors spread over a 9 x 9 x 3 m room."""
    return AnchorCoordinateTable.from_points([
        (0.0, 0.0, 0.0),
        (9.0, 0.0, 3.0),
        (0.0, 9.0, 3.0),
        (9.0, 9.0, 0.0),
        (0.0, 0.0, 3.0),
        (9.0, 0.0, 0.0),
        (0.0, 9.0, 0.0),
        (9.0, 9.0, 3.0),
    ])


# =============================================================================
# Record Builders
# =============================================================================


def make_range_report(
    trigger_txts: int,
    ranges: Optional[Sequence[float]] = None,
    tag_addr: int = 0x1234,
    system_ts: int = 1_000_000,
    seq_num: int = 0,
) -> RangeReport:
    """RangeReport with 8 ranges (all 100.0 unless given)."""
    return RangeReport(
        tag_addr=tag_addr,
        system_ts=system_ts,
        seq_num=seq_num,
        trigger_txts=trigger_txts,
        ranges=tuple(ranges) if ranges is not None else (100.0,) * 8,
    )


def make_imu_report(system_ts: int, tag_addr: int = 0x1234) -> ImuReport:
    return ImuReport(
        tag_addr=tag_addr,
        system_ts=system_ts,
        accel=(1, 2, 3),
        gyro=(4, 5, 6),
    )


def make_cir_report(seq_num: int = 7) -> CirReport:
    """CIR report covering both signs and the 24-bit extremes."""
    values = [(-(1 << 23), (1 << 23) - 1), (-1, 1), (0, 0)] + [
        (i * 1000, -i * 1000) for i in range(CIR_WINDOW - 3)
    ]
    return CirReport(
        src_addr=0x0042,
        system_ts=123_456_789,
        seq_num=seq_num,
        ip_poa=0x1111,
        fp_index=0x2222,
        start_index=0x3333,
        cir_size=1016,
        cir=tuple(RawCirSample.from_ints(re, im) for re, im in values),
    )


def distances_to(
    target: Tuple[float, float, float], points: Sequence[Tuple[float, float, float]]
) -> List[float]:
    """Exact Euclidean distances from target to each point."""
    return [math.dist(target, p) for p in points]
