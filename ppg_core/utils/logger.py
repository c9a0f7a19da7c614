"""
Logger Utilities
Logging setup for the PPG core: console output plus an optional rotating log file
described by the ``logging`` section of app_config.yaml
"""

import json
import logging
import logging.handlers
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

ROOT_LOGGER = "ppg_core"

LOG_FORMATS: Dict[str, str] = {
    'simple': '%(levelname)s: %(message)s',
    'detailed': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'compact': '%(asctime)s %(levelname).1s %(name)s: %(message)s',
}
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_SIZE_UNITS = {'': 1, 'B': 1, 'K': 1024, 'KB': 1024, 'M': 1024 ** 2, 'MB': 1024 ** 2,
               'G': 1024 ** 3, 'GB': 1024 ** 3}
_SIZE_PATTERN = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([A-Z]*)\s*$')

# Loggers of the numeric stack that are noisy at DEBUG
LIBRARY_LOGGERS = ('numpy', 'scipy', 'matplotlib', 'yaml', 'dotenv')


@dataclass
class LoggingSettings:
    """The ``logging`` section of app_config.yaml."""
    file: Optional[str] = None
    level: str = "DEBUG"
    max_size: Union[str, int] = "10MB"
    backup_count: int = 5
    format: str = "detailed"

    @classmethod
    def from_yaml(cls, config_path: Optional[str]) -> Optional["LoggingSettings"]:
        """
        Read logging settings from a YAML configuration file

        Args:
            config_path: Path to app_config.yaml

        Returns:
            LoggingSettings, or None when the file or section is missing
        """
        if not config_path or not Path(config_path).exists():
            return None
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
        section = config.get('logging')
        if not isinstance(section, dict):
            return None
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def setup_logger(name: str = ROOT_LOGGER,
                 config_path: Optional[str] = None,
                 log_level: str = "INFO") -> logging.Logger:
    """
    Configure the package logger once

    Module loggers (``ppg_core.processing.*``, ``ppg_core.pipeline.*``,
    ``ppg_core.sources.*``) propagate to it, so a single call in the
    application covers the whole pipeline.

    Args:
        name: Logger name
        config_path: YAML configuration with an optional ``logging`` section
        log_level: Console log level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(_to_level(log_level))
    logger.addHandler(create_console_handler(log_level))

    try:
        settings = LoggingSettings.from_yaml(config_path)
    except (OSError, TypeError, yaml.YAMLError) as e:
        logger.warning(f"Could not load logging config from {config_path}: {e}")
        settings = None

    if settings is not None and settings.file:
        try:
            logger.addHandler(create_file_handler(settings))
            # The file may be more verbose than the console
            logger.setLevel(min(logger.level, _to_level(settings.level)))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not open log file {settings.file}: {e}")

    quiet_library_loggers("WARNING")
    return logger


def create_file_handler(settings: LoggingSettings) -> logging.handlers.RotatingFileHandler:
    """
    Rotating file handler for the configured log file

    Args:
        settings: Logging settings with ``file`` set

    Returns:
        Configured file handler
    """
    log_path = Path(settings.file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=parse_log_size(settings.max_size),
        backupCount=int(settings.backup_count),
        encoding='utf-8',
    )
    handler.setLevel(_to_level(settings.level))
    handler.setFormatter(get_formatter(settings.format))
    return handler


def create_console_handler(log_level: str = "INFO") -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_to_level(log_level))
    handler.setFormatter(get_formatter("simple"))
    return handler


def get_formatter(format_type: str = "detailed") -> logging.Formatter:
    """
    Formatter by name: 'simple', 'detailed', 'compact' or 'json'

    Unknown names fall back to 'detailed'.
    """
    if format_type == "json":
        return JSONFormatter()
    fmt = LOG_FORMATS.get(format_type, LOG_FORMATS['detailed'])
    return logging.Formatter(fmt, datefmt=DATE_FORMAT)


def parse_log_size(size: Union[str, int, float]) -> int:
    """
    Convert a size such as "10MB", "512k" or 2048 to bytes

    Raises:
        ValueError: Unrecognised size string
    """
    if isinstance(size, (int, float)):
        return int(size)

    match = _SIZE_PATTERN.match(str(size).upper())
    if not match or match.group(2) not in _SIZE_UNITS:
        raise ValueError(f"Invalid size format: {size}")
    return int(float(match.group(1)) * _SIZE_UNITS[match.group(2)])


def quiet_library_loggers(level: str = "WARNING"):
    numeric_level = _to_level(level, logging.WARNING)
    for logger_name in LIBRARY_LOGGERS:
        logging.getLogger(logger_name).setLevel(numeric_level)


def _to_level(level: Union[str, int], default: int = logging.INFO) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), default)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record

    Records logged with ``extra={'ppg': {...}}`` (the pipeline's per-second
    summary) carry those vitals under the ``ppg`` key.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'function': record.funcName,
            'line': record.lineno,
        }
        ppg = getattr(record, 'ppg', None)
        if ppg is not None:
            entry['ppg'] = ppg
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Logger below the package root (``ppg_core.<name>``)

    Args:
        name: Child name; None returns the package logger itself
    """
    if not name or name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    if name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
