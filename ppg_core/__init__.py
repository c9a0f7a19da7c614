"""
PPG Core
Camera photoplethysmography signal processing: heart rate, SpO2, HRV and signal quality
"""

__version__ = "1.0.0"

from .data.models import (
    ConfidenceLevel,
    PipelineEvent,
    PipelineEventType,
    ProcessedPPGFrame,
    SQIResult,
)
from .data.settings import PipelineConfig
from .pipeline.ppg_pipeline import PPGPipeline

__all__ = [
    '__version__',
    'ConfidenceLevel',
    'PipelineConfig',
    'PipelineEvent',
    'PipelineEventType',
    'PPGPipeline',
    'ProcessedPPGFrame',
    'SQIResult',
]
