"""
I/O Module: Byte stream framing, serial sources and publish sinks.
"""

from .rzcobs import stuff, unstuff, UnstuffError
from .stream_decoder import (
    DecoderState,
    StreamDecoder,
    FrameReader,
    FRAME_HEADER,
    FRAME_PREFIX,
)
from .serial_source import (
    StreamChunk,
    StreamFailure,
    SerialStreamReader,
    open_serial_stream,
)
from .publisher import Publisher, MqttConfig, MqttPublisher, ConsolePublisher

__all__ = [
    # Unstuffing
    'stuff',
    'unstuff',
    'UnstuffError',
    # Framing
    'DecoderState',
    'StreamDecoder',
    'FrameReader',
    'FRAME_HEADER',
    'FRAME_PREFIX',
    # Sources
    'StreamChunk',
    'StreamFailure',
    'SerialStreamReader',
    'open_serial_stream',
    # Sinks
    'Publisher',
    'MqttConfig',
    'MqttPublisher',
    'ConsolePublisher',
]
