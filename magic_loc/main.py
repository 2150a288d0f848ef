"""
Command-line entry points.

    magic-loc-central -s /dev/ttyACM0 /dev/ttyACM1 ... [--broker HOST]
    magic-loc-stream  -s /dev/ttyACM0

magic-loc-central runs the full gateway and publishes to MQTT.
magic-loc-stream prints converted CIR reports as JSON lines on stdout.
"""

import argparse
import logging
import sys
from typing import List, Optional

import serial

from magic_loc import config
from magic_loc.gateway import MagicLocGateway
from magic_loc.io.publisher import ConsolePublisher, MqttConfig, MqttPublisher
from magic_loc.io.serial_source import open_serial_stream
from magic_loc.localization.anchor_table import AnchorCoordinateTable
from magic_loc.localization.synchronizer import RangeSynchronizer, SynchronizerConfig
from magic_loc.localization.trilateration import TrilaterationConfig, TrilaterationSolver
from magic_loc.metrics import get_metrics
from magic_loc.pipeline import GatewayPipeline, PipelineConfig, TOPIC_CIR
from magic_loc.proto.serialization import FORMATS

logger = logging.getLogger(__name__)


def setup_logging(verbosity: int):
    """INFO by default, DEBUG from -v."""
    level = getattr(logging, config.LOGGING_CONFIG["level"])
    if verbosity >= 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=config.LOGGING_CONFIG["format"])


def _add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (-v debug, -vv frame hexdumps)')
    parser.add_argument('-s', '--serial-ports', nargs='+', required=True,
                        help='Serial port devices, one per anchor')
    parser.add_argument('-b', '--baud-rate', type=int, default=None,
                        help='Serial baud rate (default depends on the tool)')


def build_central_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='magic-loc-central',
        description='UWB anchor gateway: synchronize ranges, localize tags, publish to MQTT',
    )
    _add_common_arguments(parser)
    parser.add_argument('--broker', type=str, default=None, help='MQTT broker host')
    parser.add_argument('--port', type=int, default=None, help='MQTT broker port')
    parser.add_argument('--base-topic', type=str, default=None, help='MQTT topic prefix')
    parser.add_argument('--format', choices=FORMATS, default=None, dest='payload_format',
                        help='Payload format for ranges and imu topics')
    parser.add_argument('--no-localize', action='store_true',
                        help='Publish ranges only, skip trilateration')
    return parser


def build_stream_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='magic-loc-stream',
        description='Print CIR reports from anchor serial ports as JSON lines',
    )
    _add_common_arguments(parser)
    return parser


def open_streams(ports: List[str], baud_rate: Optional[int]) -> list:
    """Open every port with SERIAL_CONFIG settings; close all on failure."""
    settings = config.SERIAL_CONFIG
    streams = []
    try:
        for port in ports:
            streams.append(open_serial_stream(
                port,
                baud_rate=baud_rate or settings["baud_rate"],
                timeout_s=settings["timeout_s"],
                low_latency=settings["low_latency"],
                clear_input=settings["clear_input"],
            ))
    except serial.SerialException:
        for stream in streams:
            stream.close()
        raise
    return streams


def _close_streams(streams: list):
    for stream in streams:
        try:
            stream.close()
        except serial.SerialException as e:
            logger.warning(f"Error closing {getattr(stream, 'port', stream)}: {e}")


def build_mqtt_config(args: argparse.Namespace) -> MqttConfig:
    """PUBLISH_CONFIG with command-line overrides."""
    settings = config.PUBLISH_CONFIG
    return MqttConfig(
        broker=args.broker or settings["broker"],
        port=args.port or settings["port"],
        client_id=settings["client_id"],
        base_topic=args.base_topic if args.base_topic is not None else settings["base_topic"],
        qos=settings["qos"],
        keepalive=settings["keepalive"],
        max_queued_messages=settings["max_queued_messages"],
    )


def build_solver() -> TrilaterationSolver:
    loc = config.LOCALIZATION_CONFIG
    return TrilaterationSolver(
        AnchorCoordinateTable.from_config(loc),
        TrilaterationConfig(
            max_iterations=loc["max_iterations"],
            convergence_tolerance=loc["convergence_tolerance"],
            max_valid_range=loc["max_valid_range"],
        ),
    )


def run_gateway(streams: list, pipeline: GatewayPipeline, print_summary: bool = True):
    """Run until interrupted, then release the streams and print metrics."""
    gateway = MagicLocGateway(
        streams,
        pipeline,
        status_interval_s=config.OUTPUT_CONFIG["status_interval_s"],
        chunk_size=config.SERIAL_CONFIG["read_chunk_size"],
    )
    gateway.install_signal_handlers()
    try:
        gateway.run()
    finally:
        _close_streams(streams)
        if print_summary and config.OUTPUT_CONFIG["print_summary_on_exit"]:
            get_metrics().print_summary()


def main(argv: Optional[List[str]] = None) -> int:
    """magic-loc-central entry point."""
    args = build_central_parser().parse_args(argv)
    setup_logging(args.verbose)
    logger.info(f"Starting with options: {vars(args)}")

    num_streams = len(args.serial_ports)
    pipeline_config = PipelineConfig(
        range_bias=config.LOCALIZATION_CONFIG["range_bias"],
        imu_max_interval_us=config.IMU_CONFIG["max_interval_us"],
        localize=not args.no_localize,
        payload_format=args.payload_format or config.PUBLISH_CONFIG["format"],
        hexdump_frames=args.verbose >= 2,
    )

    publisher = MqttPublisher(build_mqtt_config(args))
    try:
        publisher.start()
    except OSError:
        return 1

    try:
        streams = open_streams(args.serial_ports, args.baud_rate)
    except serial.SerialException as e:
        logger.error(f"Failed to open serial ports: {e}")
        publisher.stop()
        return 1

    pipeline = GatewayPipeline(
        num_streams,
        publisher,
        build_solver(),
        RangeSynchronizer(
            num_streams,
            SynchronizerConfig(stall_warning_depth=config.SYNC_CONFIG["stall_warning_depth"]),
        ),
        pipeline_config,
    )

    try:
        run_gateway(streams, pipeline)
    finally:
        publisher.stop()
    return 0


def stream_main(argv: Optional[List[str]] = None) -> int:
    """magic-loc-stream entry point."""
    args = build_stream_parser().parse_args(argv)
    setup_logging(args.verbose)
    logger.info(f"Starting with options: {vars(args)}")

    try:
        streams = open_streams(
            args.serial_ports,
            args.baud_rate or config.SERIAL_CONFIG["stream_baud_rate"],
        )
    except serial.SerialException as e:
        logger.error(f"Failed to open serial ports: {e}")
        return 1

    num_streams = len(streams)
    pipeline = GatewayPipeline(
        num_streams,
        ConsolePublisher(topics=[TOPIC_CIR]),
        build_solver(),
        RangeSynchronizer(num_streams),
        PipelineConfig(
            synchronize_ranges=False,
            localize=False,
            hexdump_frames=args.verbose >= 2,
        ),
    )
    # stdout carries the JSON lines
    run_gateway(streams, pipeline, print_summary=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
