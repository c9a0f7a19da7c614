"""
Pipeline package for the PPG core
"""

from .ppg_pipeline import PPGPipeline, extract_roi

__all__ = [
    'PPGPipeline',
    'extract_roi',
]
