"""
Tag Position Solver (Gauss-Newton Trilateration).

Estimates a 3D tag position from distances to known anchor positions by
nonlinear least squares. Any number of anchors is accepted; with fewer than
four the problem is underdetermined and the pseudo-inverse picks the
minimum-norm update, so the estimate depends on the initial guess.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from magic_loc.proto.position_estimate import PositionEstimate, FixType
from magic_loc.localization.anchor_table import AnchorCoordinateTable
from magic_loc.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class TrilaterationConfig:
    """
    Configuration for the trilateration solver.

    Attributes:
        max_iterations: Gauss-Newton iteration cap
        convergence_tolerance: Stop once the sum of squared residuals drops
            below this
        max_valid_range: Ranges above this are treated as missing
        min_distance: Jacobian denominator floor for a guess sitting on an anchor
        singular_value_cutoff: Absolute cutoff for the SVD pseudo-inverse
    """

    max_iterations: int = 45
    convergence_tolerance: float = 1e-3
    max_valid_range: float = 1e6
    min_distance: float = 1e-6
    singular_value_cutoff: float = 1e-9

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(f"Max iterations must be positive: {self.max_iterations}")
        if self.convergence_tolerance <= 0:
            raise ValueError(f"Tolerance must be positive: {self.convergence_tolerance}")


@dataclass(frozen=True)
class SolveResult:
    """Raw Gauss-Newton output."""

    point: np.ndarray
    iterations: int
    converged: bool
    residual_sq: float


def pseudo_inverse(matrix: np.ndarray, cutoff: float) -> np.ndarray:
    """Moore-Penrose inverse via SVD, zeroing singular values below `cutoff`."""
    u, s, vt = np.linalg.svd(matrix, full_matrices=False)
    s_inv = np.zeros_like(s)
    keep = s >= cutoff
    s_inv[keep] = 1.0 / s[keep]
    return (vt.T * s_inv) @ u.T


class TrilaterationSolver:
    """
    Solve tag positions against a fixed anchor table.

    Usage:
        solver = TrilaterationSolver(AnchorCoordinateTable.from_config())
        estimate = solver.localize(report.ranges, tag_addr=report.tag_addr)
        if estimate is not None:
            print(estimate.point)
    """

    def __init__(
        self,
        anchor_table: AnchorCoordinateTable,
        config: Optional[TrilaterationConfig] = None,
    ):
        self.anchor_table = anchor_table
        self.config = config or TrilaterationConfig()
        self.metrics = get_metrics()
        self._anchor_points = anchor_table.as_array()

    def solve(self, points: np.ndarray, distances: Sequence[float]) -> Optional[SolveResult]:
        """
        Gauss-Newton from the origin.

        Args:
            points: (N, 3) anchor positions
            distances: N measured distances

        Returns:
            SolveResult, or None for empty or mismatched input. Hitting the
            iteration cap still returns the last guess (converged=False).
        """
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        measured = np.asarray(distances, dtype=float).reshape(-1)
        if len(points) == 0 or len(points) != len(measured):
            return None

        guess = np.zeros(3)
        residual_sq = float('inf')

        for iteration in range(1, self.config.max_iterations + 1):
            diff = points - guess
            dist = np.linalg.norm(diff, axis=1)

            # Rows for anchors under the guess are scaled down, not normalized
            denom = np.where(dist < self.config.min_distance, self.config.min_distance, dist)
            jacobian = diff / denom[:, np.newaxis]
            residuals = dist - measured

            guess = guess + pseudo_inverse(jacobian, self.config.singular_value_cutoff) @ residuals

            residual_sq = float(residuals @ residuals)
            if residual_sq < self.config.convergence_tolerance:
                return SolveResult(point=guess, iterations=iteration, converged=True,
                                   residual_sq=residual_sq)

        return SolveResult(point=guess, iterations=self.config.max_iterations,
                           converged=False, residual_sq=residual_sq)

    def localize(self, ranges: Sequence[float], tag_addr: int = 0) -> Optional[PositionEstimate]:
        """
        Estimate a tag position from one report's ranges.

        Ranges that are non-finite or above max_valid_range are dropped along
        with their anchor.

        Args:
            ranges: Distance per anchor slot (bias already removed)
            tag_addr: Tag address for the estimate

        Returns:
            FIX_3D PositionEstimate, or None if no range is usable

        Raises:
            ValueError: More ranges than anchors in the table
        """
        if len(ranges) > len(self.anchor_table):
            raise ValueError(
                f"{len(ranges)} ranges for {len(self.anchor_table)} anchors"
            )

        measured = np.asarray(ranges, dtype=float)
        valid = np.isfinite(measured) & (measured <= self.config.max_valid_range)
        if not valid.any():
            logger.debug(f"Tag {tag_addr}: no valid ranges")
            return None

        result = self.solve(self._anchor_points[:len(measured)][valid], measured[valid])
        if result is None:
            return None

        if not np.all(np.isfinite(result.point)):
            logger.warning(f"Tag {tag_addr}: solver diverged")
            return None

        self.metrics.record_histogram('solver_iterations', result.iterations)
        if not result.converged:
            logger.debug(
                f"Tag {tag_addr}: no convergence after {result.iterations} iterations "
                f"(residual {result.residual_sq:.4g})"
            )

        return PositionEstimate(
            tag_addr=tag_addr,
            point=tuple(result.point),
            fix_type=FixType.FIX_3D,
            num_anchors_used=int(valid.sum()),
            iterations=result.iterations,
            residual_sq=result.residual_sq,
            converged=result.converged,
        )
