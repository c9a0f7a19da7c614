"""
Processing package for the PPG core
Per-sample DSP stages used by the pipeline
"""

from .rgb_calibrator import RGBCalibrator
from .adaptive_bandpass import AdaptiveBandpass
from .hilbert_transform import HilbertTransform
from .peak_detector import PeakDetectorHDEM, calculate_hrv
from .signal_quality import MultiSQIValidator
from .finger_detector import FingerDetector
from .spo2 import calculate_ratio_r, compute_ac_dc, estimate_spo2

__all__ = [
    'RGBCalibrator',
    'AdaptiveBandpass',
    'HilbertTransform',
    'PeakDetectorHDEM',
    'calculate_hrv',
    'MultiSQIValidator',
    'FingerDetector',
    'calculate_ratio_r',
    'compute_ac_dc',
    'estimate_spo2',
]
