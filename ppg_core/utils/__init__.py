"""
Utilities package for the PPG core
Logging setup, configuration loading and decorators
"""

from .logger import setup_logger, get_logger
from .config_loader import ConfigLoader
from .decorators import timing

__all__ = [
    'setup_logger',
    'get_logger',
    'ConfigLoader',
    'timing',
]
