"""
mcremote: remote control channel for a long-running managed service.

A client connects over TCP, sends one command byte (logs, logs -f, start,
stop, restart) and receives the command's output or a live log stream.
"""

from .config import McRemoteConfig, get_config, load_config, set_config
from .core.exceptions import ConfigError, DecodeError, McRemoteError, ProcessSpawnError
from .core.protocol import CANCEL_CODE, Command

__version__ = "0.1.0"

__all__ = [
    "CANCEL_CODE",
    "Command",
    "ConfigError",
    "DecodeError",
    "McRemoteConfig",
    "McRemoteError",
    "ProcessSpawnError",
    "get_config",
    "load_config",
    "set_config",
]
