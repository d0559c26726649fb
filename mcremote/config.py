"""
Centralized configuration for mcremote.

Settings come from defaults, an optional YAML file and MCREMOTE_* environment
variables, in that order of precedence (environment wins).
"""

from dataclasses import dataclass, field
from enum import Enum
import os
from typing import Optional, Dict, Any, List
import yaml

from .core.exceptions import ConfigError
from .core.protocol import Command


class LogLevel(Enum):
    """Log levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    return value if value is not None else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _env_args(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return value.split()


@dataclass
class NetworkConfig:
    """Listening / connecting address."""
    host: str = "127.0.0.1"
    port: int = 4086

    def __post_init__(self):
        try:
            self.port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigError(f"port must be an integer, got {self.port!r}") from None
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")

    @classmethod
    def from_env(cls, base: Optional['NetworkConfig'] = None) -> 'NetworkConfig':
        """Load network config from environment variables."""
        base = base or cls()
        return cls(
            host=_env_str('MCREMOTE_HOST', base.host),
            port=_env_int('MCREMOTE_PORT', base.port),
        )


@dataclass
class ServiceConfig:
    """
    External program driven by each command.

    Any argument containing ``{service}`` is expanded with ``service_name``.
    """
    program: str = "docker"
    service_name: str = "lads-mc"
    logs_args: List[str] = field(default_factory=lambda: ["logs", "{service}"])
    follow_args: List[str] = field(default_factory=lambda: ["logs", "{service}", "-f"])
    start_args: List[str] = field(default_factory=lambda: ["compose", "up", "{service}", "-d"])
    stop_args: List[str] = field(default_factory=lambda: ["compose", "stop", "{service}"])
    restart_args: List[str] = field(default_factory=lambda: ["compose", "restart", "{service}"])

    def argv_for(self, command: Command) -> List[str]:
        """Arguments (without the program) for ``command``."""
        templates = {
            Command.LOGS_FOLLOW: self.follow_args,
            Command.LOGS_ONCE: self.logs_args,
            Command.START: self.start_args,
            Command.STOP: self.stop_args,
            Command.RESTART: self.restart_args,
        }
        return [arg.replace('{service}', self.service_name) for arg in templates[command]]

    @classmethod
    def from_env(cls, base: Optional['ServiceConfig'] = None) -> 'ServiceConfig':
        """Load service config from environment variables."""
        base = base or cls()
        return cls(
            program=_env_str('MCREMOTE_PROGRAM', base.program),
            service_name=_env_str('MCREMOTE_SERVICE', base.service_name),
            logs_args=_env_args('MCREMOTE_LOGS_ARGS', base.logs_args),
            follow_args=_env_args('MCREMOTE_FOLLOW_ARGS', base.follow_args),
            start_args=_env_args('MCREMOTE_START_ARGS', base.start_args),
            stop_args=_env_args('MCREMOTE_STOP_ARGS', base.stop_args),
            restart_args=_env_args('MCREMOTE_RESTART_ARGS', base.restart_args),
        )


@dataclass
class ServerConfig:
    """Server-specific configuration."""
    # Capacity of the channel tasks use to request their own teardown
    cancel_queue_size: int = 15

    @classmethod
    def from_env(cls, base: Optional['ServerConfig'] = None) -> 'ServerConfig':
        """Load server config from environment variables."""
        base = base or cls()
        return cls(
            cancel_queue_size=_env_int('MCREMOTE_CANCEL_QUEUE_SIZE', base.cancel_queue_size),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s %(levelname)-5s %(name)-28s %(message)s"
    datefmt: str = "%m/%d/%Y %H:%M:%S"
    file_path: Optional[str] = None
    max_file_size_mb: int = 100
    backup_count: int = 5

    def __post_init__(self):
        if not isinstance(self.level, LogLevel):
            try:
                self.level = LogLevel(str(self.level).lower())
            except ValueError:
                raise ConfigError(f"unknown log level: {self.level!r}") from None

    @classmethod
    def from_env(cls, base: Optional['LoggingConfig'] = None) -> 'LoggingConfig':
        """Load logging config from environment variables."""
        base = base or cls()
        return cls(
            level=_env_str('MCREMOTE_LOG_LEVEL', base.level.value),
            format=_env_str('MCREMOTE_LOG_FORMAT', base.format),
            datefmt=_env_str('MCREMOTE_LOG_DATEFMT', base.datefmt),
            file_path=_env_str('MCREMOTE_LOG_FILE', base.file_path),
            max_file_size_mb=_env_int('MCREMOTE_LOG_MAX_SIZE_MB', base.max_file_size_mb),
            backup_count=_env_int('MCREMOTE_LOG_BACKUP_COUNT', base.backup_count),
        )


@dataclass
class McRemoteConfig:
    """Main configuration class."""
    network: NetworkConfig = field(default_factory=NetworkConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file: Optional[str] = None

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'McRemoteConfig':
        """
        Load configuration from YAML file and/or environment variables.

        Args:
            path: Path to YAML config file (optional)

        Returns:
            McRemoteConfig instance with loaded settings

        Raises:
            ConfigError: If the file cannot be parsed or holds invalid values
        """
        config = cls()

        if path:
            try:
                with open(path, 'r') as f:
                    yaml_data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"failed to load config from {path}: {e}") from e

            if yaml_data:
                if not isinstance(yaml_data, dict):
                    raise ConfigError(f"config file {path} must contain a mapping")
                config = cls._from_dict(yaml_data)
            config.config_file = path

        # Environment overrides only the values that are actually set
        config.network = NetworkConfig.from_env(config.network)
        config.service = ServiceConfig.from_env(config.service)
        config.server = ServerConfig.from_env(config.server)
        config.logging = LoggingConfig.from_env(config.logging)

        return config

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> 'McRemoteConfig':
        """Create config from dictionary (YAML data)."""
        try:
            return cls(
                network=NetworkConfig(**data.get('network', {})),
                service=ServiceConfig(**data.get('service', {})),
                server=ServerConfig(**data.get('server', {})),
                logging=LoggingConfig(**data.get('logging', {})),
            )
        except TypeError as e:
            raise ConfigError(f"invalid config section: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            'network': {
                'host': self.network.host,
                'port': self.network.port,
            },
            'service': {
                'program': self.service.program,
                'service_name': self.service.service_name,
                'logs_args': list(self.service.logs_args),
                'follow_args': list(self.service.follow_args),
                'start_args': list(self.service.start_args),
                'stop_args': list(self.service.stop_args),
                'restart_args': list(self.service.restart_args),
            },
            'server': {
                'cancel_queue_size': self.server.cancel_queue_size,
            },
            'logging': {
                'level': self.logging.level.value,
                'format': self.logging.format,
                'datefmt': self.logging.datefmt,
                'file_path': self.logging.file_path,
                'max_file_size_mb': self.logging.max_file_size_mb,
                'backup_count': self.logging.backup_count,
            },
        }

    def save(self, path: str) -> None:
        """Save configuration to YAML file."""
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# Global configuration instance
_config: Optional[McRemoteConfig] = None


def get_config() -> McRemoteConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = McRemoteConfig.load()
    return _config


def set_config(config: McRemoteConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def load_config(path: Optional[str] = None) -> McRemoteConfig:
    """Load configuration from file and/or environment."""
    return McRemoteConfig.load(path)
