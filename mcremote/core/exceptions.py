"""
Exception hierarchy for mcremote.

Every error raised by the server or client derives from McRemoteError and
carries a human-readable message plus an optional context dict for logging.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    'McRemoteError',
    'DecodeErrorKind',
    'DecodeError',
    'ProcessSpawnError',
    'ConfigError',
]


class McRemoteError(Exception):
    """Base exception for all mcremote errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class DecodeErrorKind(Enum):
    """Why a command byte could not be decoded."""
    EMPTY_MESSAGE = "empty message"
    INVALID_OPTION = "invalid option"


class DecodeError(McRemoteError):
    """
    The first byte of a connection is not a known command.

    Always recoverable: the server reports it to the client as text and
    closes the connection without registering a task.
    """

    def __init__(self, kind: DecodeErrorKind, value: Optional[int] = None):
        if kind is DecodeErrorKind.INVALID_OPTION and value is not None:
            message = f"{kind.value}: {value}"
        else:
            message = kind.value
        super().__init__(message, context={'kind': kind.name, 'value': value})
        self.kind = kind
        self.value = value

    @classmethod
    def empty_message(cls) -> 'DecodeError':
        return cls(DecodeErrorKind.EMPTY_MESSAGE)

    @classmethod
    def invalid_option(cls, value: int) -> 'DecodeError':
        return cls(DecodeErrorKind.INVALID_OPTION, value)


class ProcessSpawnError(McRemoteError):
    """An external program could not be started."""

    def __init__(self, program: str, args: List[str], cause: OSError):
        super().__init__(
            f"failed to start {program}: {cause.strerror or cause}",
            context={'program': program, 'args': list(args), 'errno': cause.errno},
        )
        self.program = program
        self.args_list = list(args)
        self.cause = cause


class ConfigError(McRemoteError):
    """Invalid configuration value."""
    pass
