"""
Anchor coordinate table.

Known positions of the reference anchors, indexed by slot. Slot i is the
anchor whose distance appears at ranges[i] in every RangeReport.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class AnchorCoordinate:
    """Fixed 3D anchor position (meters)."""

    x: float
    y: float
    z: float

    def __post_init__(self):
        for name in ('x', 'y', 'z'):
            value = float(getattr(self, name))
            if not np.isfinite(value):
                raise ValueError(f"Anchor coordinate {name} must be finite: {value}")
            object.__setattr__(self, name, value)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class AnchorCoordinateTable:
    """
    Ordered anchor positions.

    Usage:
        table = AnchorCoordinateTable.from_config()
        positions = table.as_array()   # (N, 3)
    """

    anchors: Tuple[AnchorCoordinate, ...]

    def __post_init__(self):
        if len(self.anchors) == 0:
            raise ValueError("Anchor table cannot be empty")
        object.__setattr__(self, 'anchors', tuple(self.anchors))

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> 'AnchorCoordinateTable':
        """Build from (x, y, z) sequences."""
        anchors = []
        for point in points:
            if len(point) != 3:
                raise ValueError(f"Anchor point must have 3 components: {point}")
            anchors.append(AnchorCoordinate(*point))
        return cls(anchors=tuple(anchors))

    @classmethod
    def from_config(cls, localization_config: Optional[dict] = None) -> 'AnchorCoordinateTable':
        """Build from LOCALIZATION_CONFIG['anchor_coordinates']."""
        if localization_config is None:
            from magic_loc.config import LOCALIZATION_CONFIG
            localization_config = LOCALIZATION_CONFIG
        return cls.from_points(localization_config["anchor_coordinates"])

    def __len__(self) -> int:
        return len(self.anchors)

    def __getitem__(self, index: int) -> AnchorCoordinate:
        return self.anchors[index]

    def __iter__(self) -> Iterator[AnchorCoordinate]:
        return iter(self.anchors)

    def as_array(self) -> np.ndarray:
        """Positions as an (N, 3) float array."""
        return np.array([a.as_tuple() for a in self.anchors], dtype=float)
