"""Packet decoding errors."""


class PacketDecodeError(ValueError):
    """Unstuffed payload does not match the expected record layout."""


class UnknownPacketError(PacketDecodeError):
    """Payload type tag is not one of the known magics."""
