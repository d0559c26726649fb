"""
Logging setup shared by the server and client entry points.
"""

import logging
import logging.handlers
import sys
from typing import Optional

from .config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Install stderr (and optionally rotating file) handlers on the root logger.

    Calling it again replaces the handlers installed by a previous call.
    """
    config = config or LoggingConfig()
    formatter = logging.Formatter(config.format, datefmt=config.datefmt)

    handlers = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if config.file_path:
        file_handler = logging.handlers.RotatingFileHandler(
            config.file_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, config.level.name),
        handlers=handlers,
        force=True,
    )
