"""
Tag position published on the points topic.

One estimate per range report; reports the solver cannot use become an
origin NO_FIX so every tag in a round still gets a point.
"""

from dataclasses import dataclass
from typing import Tuple
from enum import IntEnum


class FixType(IntEnum):
    """Type of position fix."""

    NO_FIX = 0          # No valid measurement, origin sentinel
    FIX_3D = 2          # 3D position from Gauss-Newton


@dataclass(frozen=True)
class PositionEstimate:
    """
    Tag position estimate from trilateration.

    Attributes:
        tag_addr: Address of the tag
        point: Position (x, y, z) in the anchor table frame
        fix_type: NO_FIX or FIX_3D
        num_anchors_used: Number of valid (anchor, range) pairs
        iterations: Gauss-Newton iterations run
        residual_sq: Sum of squared residuals at the last iteration
        converged: True if the residual dropped below tolerance

    Notes:
        - point is always populated; NO_FIX carries the origin
        - A non-converged estimate is still a FIX_3D (best available guess)
    """

    tag_addr: int
    point: Tuple[float, float, float]
    fix_type: FixType
    num_anchors_used: int = 0
    iterations: int = 0
    residual_sq: float = 0.0
    converged: bool = False

    def __post_init__(self):
        """Validate position estimate."""
        if len(self.point) != 3:
            raise ValueError(f"Point must have 3 components: {self.point}")

        if self.num_anchors_used < 0:
            raise ValueError(f"Num anchors cannot be negative: {self.num_anchors_used}")

        if self.residual_sq < 0:
            raise ValueError(f"Residual cannot be negative: {self.residual_sq}")

        object.__setattr__(self, 'point', tuple(float(c) for c in self.point))

    def to_pair(self) -> list:
        """[tag_addr, [x, y, z]] as published on the points topic."""
        return [self.tag_addr, list(self.point)]


def create_no_fix(tag_addr: int) -> PositionEstimate:
    """
    Create a NO_FIX position estimate at the origin.

    Args:
        tag_addr: Tag address

    Returns:
        PositionEstimate with NO_FIX
    """
    return PositionEstimate(
        tag_addr=tag_addr,
        point=(0.0, 0.0, 0.0),
        fix_type=FixType.NO_FIX,
    )
