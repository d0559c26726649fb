"""Wire protocol and error types shared by server and client."""

from .exceptions import (
    ConfigError,
    DecodeError,
    DecodeErrorKind,
    McRemoteError,
    ProcessSpawnError,
)
from .protocol import (
    CANCEL_CODE,
    Command,
    decode_command,
    encode_cancel,
    encode_command,
    is_cancel,
    read_command,
)

__all__ = [
    "CANCEL_CODE",
    "Command",
    "ConfigError",
    "DecodeError",
    "DecodeErrorKind",
    "McRemoteError",
    "ProcessSpawnError",
    "decode_command",
    "encode_cancel",
    "encode_command",
    "is_cancel",
    "read_command",
]
