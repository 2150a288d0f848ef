"""
Reverse zero-compressing COBS (rzcobs).

The anchor firmware removes every zero byte from a payload so that 0x00 can
delimit frames on the wire. The encoding is written forwards and decoded
backwards, starting from the last byte of the stuffed payload.

Control bytes, as seen by the decoder:
    0x00        never valid
    0x01..0x7F  7-bit mask for a group of 7 output bytes; a set bit emits a
                zero, a clear bit takes the next literal byte
    0x80..0xFE  one zero followed by (x & 0x7F) + 7 literal bytes
    0xFF        134 literal bytes, no zero

A partial trailing group is padded with zeros, so decoded payloads may carry
up to 7 trailing zero bytes. Record parsers ignore trailing bytes.
"""

GROUP_SIZE = 7
MAX_RUN = 134


class UnstuffError(ValueError):
    """Stuffed payload is corrupted or truncated."""


def unstuff(data: bytes) -> bytes:
    """
    Decode an rzcobs payload.

    Args:
        data: Stuffed payload (without frame delimiters)

    Returns:
        Decoded bytes

    Raises:
        UnstuffError: Zero control byte or input ends inside a group
    """
    out = bytearray()
    pos = len(data) - 1

    def take() -> int:
        nonlocal pos
        if pos < 0:
            raise UnstuffError(f"Stuffed payload truncated ({len(data)} bytes)")
        byte = data[pos]
        pos -= 1
        return byte

    while pos >= 0:
        control = take()
        if control == 0x00:
            raise UnstuffError(f"Zero control byte at offset {pos + 1}")
        elif control < 0x80:
            for i in range(GROUP_SIZE):
                if control & (1 << (GROUP_SIZE - 1 - i)):
                    out.append(0)
                else:
                    out.append(take())
        elif control < 0xFF:
            out.append(0)
            for _ in range((control & 0x7F) + GROUP_SIZE):
                out.append(take())
        else:
            for _ in range(MAX_RUN):
                out.append(take())

    out.reverse()
    return bytes(out)


def stuff(data: bytes) -> bytes:
    """
    Encode a payload with rzcobs, the inverse of unstuff().

    Used for loop-back testing and the frame builder; output never contains 0x00.
    """
    out = bytearray()
    run = 0
    zeros = 0

    for byte in data:
        if run < GROUP_SIZE:
            if byte == 0:
                zeros |= 1 << run
            else:
                out.append(byte)
            run += 1
            if run == GROUP_SIZE and zeros != 0:
                out.append(zeros)
                run = 0
                zeros = 0
        elif byte == 0:
            out.append(0x80 | (run - GROUP_SIZE))
            run = 0
            zeros = 0
        else:
            out.append(byte)
            run += 1
            if run == MAX_RUN:
                out.append(0xFF)
                run = 0
                zeros = 0

    if run < GROUP_SIZE:
        if run != 0:
            # Positions past the end of data decode as padding zeros
            out.append(zeros | ((0x7F << run) & 0x7F))
    else:
        out.append(0x80 | (run - GROUP_SIZE))

    return bytes(out)
