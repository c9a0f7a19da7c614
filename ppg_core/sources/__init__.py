"""
Frame sources for the PPG core
"""

from .base_source import BaseFrameSource, SourceFrame
from .synthetic_source import SyntheticFingerSource
from .replay_source import ReplayFrameSource, write_recording

__all__ = [
    'BaseFrameSource',
    'SourceFrame',
    'SyntheticFingerSource',
    'ReplayFrameSource',
    'write_recording',
]
