"""
Localization Module: Anchor table, stream synchronization, trilateration.

Key classes:
- AnchorCoordinateTable: Fixed anchor positions by slot
- RangeSynchronizer: Aligns per-anchor range reports on trigger_txts
- TrilaterationSolver: Gauss-Newton position estimate
"""

from .anchor_table import AnchorCoordinate, AnchorCoordinateTable
from .synchronizer import RangeSynchronizer, SynchronizerConfig
from .trilateration import (
    TrilaterationSolver,
    TrilaterationConfig,
    SolveResult,
    pseudo_inverse,
)

__all__ = [
    'AnchorCoordinate',
    'AnchorCoordinateTable',
    'RangeSynchronizer',
    'SynchronizerConfig',
    'TrilaterationSolver',
    'TrilaterationConfig',
    'SolveResult',
    'pseudo_inverse',
]
