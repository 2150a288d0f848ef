"""
Gateway dispatch core.

Single-threaded: the gateway loop hands every received chunk to
GatewayPipeline.feed(), which runs framing, unstuffing, dispatch,
synchronization, calibration, localization and publishing inline.

    bytes -> FrameReader -> decode_frame -> RangeReport -> RangeSynchronizer
                                                             -> bias -> "ranges"
                                                             -> solver -> "points"
                                         -> ImuReport  -> interval check -> "imu"
                                         -> CirReport  -> convert -> "cir"
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from magic_loc.io.publisher import Publisher
from magic_loc.io.rzcobs import UnstuffError
from magic_loc.io.stream_decoder import FrameReader
from magic_loc.localization.synchronizer import RangeSynchronizer
from magic_loc.localization.trilateration import TrilaterationSolver
from magic_loc.proto.errors import PacketDecodeError, UnknownPacketError
from magic_loc.proto.packet import decode_frame
from magic_loc.proto.range_report import RangeReport, SynchronizedBatch
from magic_loc.proto.imu_report import ImuReport
from magic_loc.proto.cir_report import CirReport
from magic_loc.proto.position_estimate import PositionEstimate, create_no_fix
from magic_loc.proto.serialization import (
    FORMAT_JSON,
    FORMATS,
    serialize_ranges,
    serialize_points,
    serialize_imu,
    serialize_cir,
)
from magic_loc.metrics import get_metrics

logger = logging.getLogger(__name__)

TOPIC_RANGES = "ranges"
TOPIC_POINTS = "points"
TOPIC_IMU = "imu"
TOPIC_CIR = "cir"


@dataclass
class PipelineConfig:
    """
    Configuration for the dispatch core.

    Attributes:
        range_bias: Calibration offset subtracted from every range
        imu_max_interval_us: IMU inter-arrival gap reported as an anomaly
        synchronize_ranges: Queue range reports for synchronization; when
            off they are counted and ignored
        localize: Run the solver on synchronized batches
        payload_format: "json" or "binary" for ranges and IMU
        hexdump_frames: Log every raw frame at DEBUG
    """

    range_bias: float = 76.8
    imu_max_interval_us: int = 1500
    synchronize_ranges: bool = True
    localize: bool = True
    payload_format: str = FORMAT_JSON
    hexdump_frames: bool = False

    def __post_init__(self):
        if self.payload_format not in FORMATS:
            raise ValueError(f"Unknown payload format '{self.payload_format}'")
        if self.imu_max_interval_us <= 0:
            raise ValueError(f"IMU interval must be positive: {self.imu_max_interval_us}")


class GatewayPipeline:
    """
    Decode, synchronize, localize and publish.

    Usage:
        pipeline = GatewayPipeline(num_streams, publisher, solver, synchronizer)
        pipeline.feed(stream_index, chunk)

    Malformed input never raises: every rejected frame is logged and counted
    under a drop reason.
    """

    def __init__(
        self,
        num_streams: int,
        publisher: Publisher,
        solver: TrilaterationSolver,
        synchronizer: Optional[RangeSynchronizer] = None,
        config: Optional[PipelineConfig] = None,
    ):
        if num_streams < 1:
            raise ValueError(f"Need at least one stream: {num_streams}")
        self.num_streams = num_streams
        self.publisher = publisher
        self.solver = solver
        self.synchronizer = synchronizer or RangeSynchronizer(num_streams)
        if self.synchronizer.num_streams != num_streams:
            raise ValueError(
                f"Synchronizer has {self.synchronizer.num_streams} streams, expected {num_streams}"
            )
        self.config = config or PipelineConfig()
        self.metrics = get_metrics()

        self.readers = [FrameReader() for _ in range(num_streams)]
        self.last_imu_ts: Optional[int] = None

    def feed(self, stream_index: int, data: bytes) -> int:
        """
        Process bytes received on one stream.

        Args:
            stream_index: Index of the originating stream
            data: Raw bytes

        Returns:
            Number of frames decoded from the stream's buffer

        Raises:
            IndexError: stream_index out of range
        """
        if not 0 <= stream_index < self.num_streams:
            raise IndexError(f"Stream index {stream_index} out of range [0, {self.num_streams})")

        self.metrics.increment('bytes_in', len(data))
        count = 0
        for frame in self.readers[stream_index].feed(data):
            count += 1
            self.handle_frame(stream_index, frame)
        return count

    def handle_frame(self, stream_index: int, frame: bytes):
        """Unstuff, decode and dispatch one raw frame."""
        self.metrics.increment('frames_in')
        if self.config.hexdump_frames:
            logger.debug(f"Frame from {stream_index}: {frame.hex(' ')}")

        try:
            packet = decode_frame(frame)
        except UnstuffError as e:
            logger.debug(f"Stream {stream_index}: unstuffing failed: {e}")
            self.metrics.increment_drop('unstuff_error')
            return
        except UnknownPacketError as e:
            logger.warning(f"Stream {stream_index}: {e}")
            self.metrics.increment_drop('unknown_packet')
            return
        except PacketDecodeError as e:
            logger.warning(f"Stream {stream_index}: {e}")
            self.metrics.increment_drop('parse_error')
            return

        logger.debug(f"Decoded packet from {stream_index}: {packet}")

        if isinstance(packet, RangeReport):
            self.handle_range(stream_index, packet)
        elif isinstance(packet, ImuReport):
            self.handle_imu(packet)
        elif isinstance(packet, CirReport):
            self.handle_cir(packet)

    def handle_range(self, stream_index: int, report: RangeReport):
        """Queue a range report and process every round it completes."""
        self.metrics.increment('range_reports')
        if not self.config.synchronize_ranges:
            return
        self.synchronizer.push(stream_index, report)

        for batch in self.synchronizer.drain():
            logger.info(f"Synchronized round {batch.trigger_txts} from {len(batch)} streams")
            corrected = batch.with_bias(self.config.range_bias)
            self._publish(TOPIC_RANGES, serialize_ranges(corrected, self.config.payload_format))

            if self.config.localize:
                estimates = self.localize_batch(corrected)
                self._publish(TOPIC_POINTS, serialize_points(estimates))

    def localize_batch(self, batch: SynchronizedBatch) -> List[PositionEstimate]:
        """One estimate per report; reports without a solution give the origin."""
        estimates = []
        for report in batch.reports:
            estimate = self.solver.localize(report.ranges, tag_addr=report.tag_addr)
            if estimate is None:
                self.metrics.increment('no_estimates')
                estimate = create_no_fix(report.tag_addr)
            else:
                self.metrics.increment('position_estimates')
            estimates.append(estimate)
            x, y, z = estimate.point
            logger.info(f"Location of tag {estimate.tag_addr}: ({x:.2f}, {y:.2f}, {z:.2f})")
        return estimates

    def handle_imu(self, report: ImuReport):
        """Check the inter-arrival gap and relay the sample."""
        self.metrics.increment('imu_reports')

        if self.last_imu_ts is not None:
            interval = report.system_ts - self.last_imu_ts
            logger.debug(f"IMU interval: {interval} us")
            if interval > self.config.imu_max_interval_us:
                logger.error(f"IMU interval too large: {interval} us")
                self.metrics.increment('imu_interval_anomalies')
        self.last_imu_ts = report.system_ts

        self._publish(TOPIC_IMU, serialize_imu(report, self.config.payload_format))

    def handle_cir(self, report: CirReport):
        """Convert and relay a CIR dump."""
        self.metrics.increment('cir_reports')
        self._publish(TOPIC_CIR, serialize_cir(report.convert()))

    def _publish(self, topic: str, payload: bytes):
        # Sinks report their own failures; a False here is already counted
        if not self.publisher.publish(topic, payload):
            logger.debug(f"Dropped {topic} message ({len(payload)} bytes)")
