"""
Wire codec for the mcremote control channel.

Every interaction is one TCP connection. The client sends a single command
byte first:

    0 = logs, follow
    1 = logs, one-shot
    2 = start
    3 = stop
    4 = restart

During a follow session the client may later send CANCEL_CODE (255) on the
same connection to ask the server to stop streaming. No other in-band
control byte exists.
"""

from __future__ import annotations

import asyncio
from enum import IntEnum

from .exceptions import DecodeError

__all__ = [
    'CANCEL_CODE',
    'Command',
    'decode_command',
    'encode_command',
    'encode_cancel',
    'is_cancel',
    'read_command',
]

CANCEL_CODE = 255


class Command(IntEnum):
    """Client command. The value is the wire byte."""
    LOGS_FOLLOW = 0
    LOGS_ONCE = 1
    START = 2
    STOP = 3
    RESTART = 4

    @property
    def is_streaming(self) -> bool:
        return self is Command.LOGS_FOLLOW

    @property
    def reply_stream(self) -> str:
        """Which captured stream of a one-shot command goes back to the client."""
        if self in (Command.LOGS_ONCE, Command.LOGS_FOLLOW):
            return 'stdout'
        # compose reports progress on stderr
        return 'stderr'


def decode_command(data: bytes) -> Command:
    """
    Decode the first byte of ``data`` into a Command.

    Raises:
        DecodeError: EMPTY_MESSAGE for zero-length input,
            INVALID_OPTION for an unknown byte.
    """
    if not data:
        raise DecodeError.empty_message()
    value = data[0]
    try:
        return Command(value)
    except ValueError:
        raise DecodeError.invalid_option(value) from None


def encode_command(command: Command) -> bytes:
    return bytes([int(command)])


def encode_cancel() -> bytes:
    return bytes([CANCEL_CODE])


def is_cancel(data: bytes) -> bool:
    return len(data) == 1 and data[0] == CANCEL_CODE


async def read_command(reader: asyncio.StreamReader) -> Command:
    """Read at most one byte from ``reader`` and decode it."""
    data = await reader.read(1)
    return decode_command(data)
