"""
Multi-stream range synchronizer.

Each anchor stream reports its own view of the same ranging round. The
rounds are identified by trigger_txts, the transmit timestamp of the poll
that started them, which every anchor sees identically. The synchronizer
buffers reports per stream and emits one batch per round once every stream
has reported it.

Rounds missed by at least one stream are never emitted. Their reports are
discarded as soon as a later round completes.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, List, Optional

from magic_loc.proto.range_report import RangeReport, SynchronizedBatch
from magic_loc.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class SynchronizerConfig:
    """
    Configuration for the range synchronizer.

    Attributes:
        stall_warning_depth: Warn once when a stream has no pending reports
            while another holds at least this many. None disables the check.
    """

    stall_warning_depth: Optional[int] = 64

    def __post_init__(self):
        if self.stall_warning_depth is not None and self.stall_warning_depth < 1:
            raise ValueError(f"Stall warning depth must be positive: {self.stall_warning_depth}")


class RangeSynchronizer:
    """
    Aligns RangeReports from N streams on trigger_txts.

    Usage:
        sync = RangeSynchronizer(num_streams=8)
        sync.push(stream_index, report)
        for batch in sync.drain():
            process(batch)

    Not thread-safe; the gateway loop is the only caller.
    """

    def __init__(self, num_streams: int, config: Optional[SynchronizerConfig] = None):
        if num_streams < 1:
            raise ValueError(f"Need at least one stream: {num_streams}")
        self.num_streams = num_streams
        self.config = config or SynchronizerConfig()
        self.metrics = get_metrics()
        self._fifos: List[Deque[RangeReport]] = [deque() for _ in range(num_streams)]
        self._stall_reported = False

    def push(self, stream_index: int, report: RangeReport):
        """
        Queue a report from one stream.

        Raises:
            IndexError: stream_index outside [0, num_streams)
        """
        if not 0 <= stream_index < self.num_streams:
            raise IndexError(f"Stream index {stream_index} out of range [0, {self.num_streams})")
        self._fifos[stream_index].append(report)

    def fifo_depths(self) -> List[int]:
        """Pending reports per stream."""
        return [len(fifo) for fifo in self._fifos]

    def try_synchronize(self) -> Optional[SynchronizedBatch]:
        """
        Emit the next complete round, if any.

        The earliest trigger_txts present in every stream is chosen. Reports
        queued ahead of it in any stream are dropped, then one report is
        popped from each stream.

        Returns:
            SynchronizedBatch ordered by stream index, or None
        """
        if any(not fifo for fifo in self._fifos):
            self._check_stall()
            return None

        # Sets, so a key repeated within one stream counts once
        common = set(r.trigger_txts for r in self._fifos[0])
        for fifo in self._fifos[1:]:
            common &= set(r.trigger_txts for r in fifo)
            if not common:
                return None

        key = min(common)

        for index, fifo in enumerate(self._fifos):
            while fifo and fifo[0].trigger_txts != key:
                stale = fifo.popleft()
                self.metrics.increment_drop('sync_discard')
                logger.debug(
                    f"Stream {index}: discarding report {stale.trigger_txts} "
                    f"(seq {stale.seq_num}) behind round {key}"
                )

        if any(not fifo for fifo in self._fifos):
            return None

        batch = SynchronizedBatch(
            trigger_txts=key,
            reports=tuple(fifo.popleft() for fifo in self._fifos),
        )
        self._stall_reported = False
        self.metrics.increment('batches_synchronized')
        return batch

    def drain(self) -> Iterator[SynchronizedBatch]:
        """Yield batches until no complete round is left."""
        while True:
            batch = self.try_synchronize()
            if batch is None:
                return
            yield batch

    def _check_stall(self):
        depth = self.config.stall_warning_depth
        if depth is None or self._stall_reported:
            return
        depths = self.fifo_depths()
        if max(depths) < depth:
            return
        empty = [i for i, d in enumerate(depths) if d == 0]
        logger.warning(
            f"Synchronizer stalled: stream(s) {empty} have no reports, "
            f"pending depths {depths}"
        )
        self.metrics.increment('sync_stalls')
        self._stall_reported = True
