"""
Data Models
Result, state and event records shared by the PPG processing stages
"""

import enum
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


class ConfidenceLevel(str, enum.Enum):
    """Confidence band derived from the global signal quality index"""
    HIGH = 'HIGH'
    MEDIUM = 'MEDIUM'
    LOW = 'LOW'
    INVALID = 'INVALID'


class PipelineEventType(str, enum.Enum):
    """Events published by the pipeline orchestrator"""
    CALIBRATION_START = 'calibration_start'
    CALIBRATION_COMPLETE = 'calibration_complete'
    PEAK_DETECTED = 'peak_detected'
    QUALITY_CHANGE = 'quality_change'
    VITALS_UPDATE = 'vitals_update'


# ============================================================
# CALIBRATION
# ============================================================

@dataclass
class RGBCalibration:
    """Per-channel zero-light offset, gain and gamma."""
    offset_r: float = 0.0
    offset_g: float = 0.0
    offset_b: float = 0.0
    gamma: float = 2.2
    scale_r: float = 1.0
    scale_g: float = 1.0
    scale_b: float = 1.0
    is_calibrated: bool = False
    samples_collected: int = 0
    calibration_time: Optional[float] = None  # epoch ms

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CalibratedRGB:
    """Offset-corrected channel values plus their gained, linearised counterparts."""
    red: float = 0.0
    green: float = 0.0
    blue: float = 0.0
    linear_red: float = 0.0
    linear_green: float = 0.0
    linear_blue: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


# ============================================================
# PEAKS & HRV
# ============================================================

@dataclass
class Peak:
    """A detected systolic peak."""
    index: int
    timestamp: float  # ms
    amplitude: float
    confidence: float


@dataclass
class HRVMetrics:
    """Time-domain heart rate variability (all values in ms, pnn50 in %)."""
    sdnn: float = 0.0
    rmssd: float = 0.0
    pnn50: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class PeakDetectionResult:
    """Batch peak detection output over a whole signal."""
    peaks: List[Peak] = field(default_factory=list)
    rr_intervals: List[float] = field(default_factory=list)
    instant_bpm: float = 0.0
    average_bpm: float = 0.0
    hrv: HRVMetrics = field(default_factory=HRVMetrics)
    threshold: List[float] = field(default_factory=list)


@dataclass
class PeakSampleResult:
    """Streaming peak detection output for one sample."""
    is_peak: bool = False
    bpm: int = 0
    rr_interval: Optional[float] = None
    confidence: float = 0.0
    peak: Optional[Peak] = None


# ============================================================
# SIGNAL QUALITY
# ============================================================

@dataclass
class SQIRawMetrics:
    """Physical statistics behind the quality sub-scores."""
    perfusion_index: float = 0.0
    skewness: float = 0.0
    kurtosis: float = 0.0
    entropy: float = 0.0
    snr: float = 0.0
    periodicity: float = 0.0
    zero_crossing_rate: float = 0.0
    stability: float = 0.0


@dataclass
class SQIResult:
    """Eight quality sub-scores (0-100), their weighted sum and the confidence band."""
    perfusion: float = 0.0
    skewness: float = 0.0
    kurtosis: float = 0.0
    entropy: float = 0.0
    snr: float = 0.0
    periodicity: float = 0.0
    zero_crossing: float = 0.0
    stability: float = 0.0
    global_sqi: float = 0.0
    confidence: ConfidenceLevel = ConfidenceLevel.INVALID
    is_valid: bool = False
    raw: SQIRawMetrics = field(default_factory=SQIRawMetrics)

    @classmethod
    def invalid(cls) -> "SQIResult":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['confidence'] = self.confidence.value
        return data


# ============================================================
# PIPELINE
# ============================================================

@dataclass
class ProcessedPPGFrame:
    """Everything the pipeline knows after one frame."""
    timestamp: float
    filtered_value: float
    raw_value: float
    finger_detected: bool
    calibrated: CalibratedRGB
    red_ac: float
    red_dc: float
    green_ac: float
    green_dc: float
    perfusion_index: float
    ratio_r: float
    is_peak: bool
    instant_bpm: float
    smoothed_bpm: int
    rr_interval: Optional[float]
    rr_intervals: List[float]
    hrv: HRVMetrics
    sqi: SQIResult
    confidence: ConfidenceLevel
    spo2: int

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict payload for consumers (JSON friendly)."""
        return {
            'timestamp': self.timestamp,
            'filtered_value': self.filtered_value,
            'raw_value': self.raw_value,
            'finger_detected': self.finger_detected,
            'calibrated': self.calibrated.to_dict(),
            'red_ac': self.red_ac,
            'red_dc': self.red_dc,
            'green_ac': self.green_ac,
            'green_dc': self.green_dc,
            'perfusion_index': self.perfusion_index,
            'ratio_r': self.ratio_r,
            'is_peak': self.is_peak,
            'instant_bpm': self.instant_bpm,
            'smoothed_bpm': self.smoothed_bpm,
            'rr_interval': self.rr_interval,
            'rr_intervals': list(self.rr_intervals),
            'hrv': self.hrv.to_dict(),
            'sqi': self.sqi.to_dict(),
            'confidence': self.confidence.value,
            'spo2': self.spo2,
        }


@dataclass
class PipelineState:
    """Externally visible orchestrator state."""
    is_calibrating: bool = False
    calibration_progress: int = 0
    is_processing: bool = False
    frames_processed: int = 0
    last_bpm: int = 0
    last_spo2: int = 0
    last_confidence: ConfidenceLevel = ConfidenceLevel.INVALID

    def reset(self) -> None:
        self.is_calibrating = False
        self.calibration_progress = 0
        self.is_processing = False
        self.frames_processed = 0
        self.last_bpm = 0
        self.last_spo2 = 0
        self.last_confidence = ConfidenceLevel.INVALID


@dataclass
class PipelineEvent:
    type: PipelineEventType
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)
