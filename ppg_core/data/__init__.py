"""
Data package for the PPG core
Result types and tunable settings
"""

from .models import (
    CalibratedRGB,
    ConfidenceLevel,
    HRVMetrics,
    Peak,
    PeakDetectionResult,
    PeakSampleResult,
    PipelineEvent,
    PipelineEventType,
    PipelineState,
    ProcessedPPGFrame,
    RGBCalibration,
    SQIRawMetrics,
    SQIResult,
)
from .settings import PipelineConfig

__all__ = [
    'CalibratedRGB',
    'ConfidenceLevel',
    'HRVMetrics',
    'Peak',
    'PeakDetectionResult',
    'PeakSampleResult',
    'PipelineConfig',
    'PipelineEvent',
    'PipelineEventType',
    'PipelineState',
    'ProcessedPPGFrame',
    'RGBCalibration',
    'SQIRawMetrics',
    'SQIResult',
]
