"""
Pipeline Settings
Tunable thresholds for every processing stage, loadable from the ``ppg`` section of app_config.yaml
"""

import logging
from dataclasses import MISSING, dataclass, field, fields, asdict, is_dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


DEFAULT_SQI_WEIGHTS: Dict[str, float] = {
    'perfusion': 0.25,
    'snr': 0.15,
    'periodicity': 0.15,
    'entropy': 0.12,
    'skewness': 0.10,
    'kurtosis': 0.10,
    'zero_crossing': 0.08,
    'stability': 0.05,
}


@dataclass
class CalibrationSettings:
    samples_required: int = 30
    offset_percentile: float = 0.05
    gamma: float = 2.2
    default_offset: float = 5.0
    instant_offset_fraction: float = 0.025
    instant_min_red: float = 100.0


@dataclass
class FilterSettings:
    low_cutoff_hz: float = 0.4
    high_cutoff_hz: float = 4.5
    order: int = 2
    notch_enabled: bool = False
    notch_frequencies: Tuple[float, ...] = (50.0, 60.0)
    notch_q: float = 30.0
    notch_min_sample_rate: float = 100.0
    max_abs_output: float = 1e10


@dataclass
class PeakDetectorSettings:
    buffer_size: int = 300
    max_rr_history: int = 30
    min_rr_ms: float = 250.0
    max_rr_ms: float = 3000.0
    bpm_smoothing: float = 0.8
    min_samples: int = 45
    analysis_window: int = 90
    check_offset: int = 5
    threshold_ratio: float = 0.7
    mean_ratio: float = 1.02
    min_snr: float = 0.5
    snr_confidence_scale: float = 3.0
    min_perfusion_index: float = 0.005
    max_perfusion_index: float = 30.0
    batch_min_samples: int = 60
    batch_refine_window: int = 10


@dataclass
class FingerDetectionSettings:
    min_red: float = 80.0
    min_rg_ratio: float = 1.0
    max_rg_ratio: float = 4.0
    saturation_level: float = 253.0
    required_frames: int = 5
    stability_window: int = 10
    min_stability_samples: int = 5
    max_variance: float = 100.0


@dataclass
class SpO2Settings:
    min_ratio: float = 0.4
    max_ratio: float = 2.5
    intercept: float = 100.0
    slope: float = 15.0
    reference_ratio: float = 0.8
    low_pi_threshold: float = 1.0
    low_pi_bonus: float = 2.0
    high_pi_threshold: float = 5.0
    high_pi_penalty: float = 1.0
    plausible_min: float = 50.0
    plausible_max: float = 105.0
    clamp_min: float = 70.0
    clamp_max: float = 100.0


@dataclass
class QualitySettings:
    min_samples: int = 30
    periodicity_min_samples: int = 60
    min_bpm: float = 40.0
    max_bpm: float = 180.0
    max_entropy_bins: int = 20
    high_threshold: float = 70.0
    medium_threshold: float = 50.0
    low_threshold: float = 30.0
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SQI_WEIGHTS))

    def __post_init__(self):
        # Partial overrides keep the remaining default weights
        overrides = {}
        for name, weight in (self.weights or {}).items():
            if name not in DEFAULT_SQI_WEIGHTS:
                logger.warning(f"Ignoring unknown SQI weight: {name}")
                continue
            overrides[name] = float(weight)
        self.weights = {**DEFAULT_SQI_WEIGHTS, **overrides}


@dataclass
class PipelineConfig:
    """
    Top-level pipeline configuration

    Attributes:
        sample_rate: Frame rate of the source (Hz)
        buffer_seconds: Length of the rolling channel buffers
        acdc_window: Samples used for AC/DC estimation
        min_acdc_samples: Samples required before AC/DC is estimated
        sqi_window: Filtered samples handed to the quality validator
        min_dc: DC level below which AC/DC is not updated
        min_ac_dc_ratio: AC/DC ratio below which AC is treated as zero
        saturation_switch_red: Raw red level above which green becomes the primary channel
        pi_valid_range: Perfusion index range (%) accepted as physiological
        roi_fraction: Side of the centred ROI relative to the shorter frame side
        roi_stride: Pixel step inside the ROI
        vitals_interval_ms: Minimum spacing of vitals_update events
    """
    sample_rate: float = 30.0
    buffer_seconds: float = 10.0
    acdc_window: int = 90
    min_acdc_samples: int = 30
    sqi_window: int = 90
    min_dc: float = 5.0
    min_ac_dc_ratio: float = 0.001
    saturation_switch_red: float = 250.0
    pi_valid_range: Tuple[float, float] = (0.05, 20.0)
    roi_fraction: float = 0.85
    roi_stride: int = 4
    vitals_interval_ms: float = 1000.0
    calibration: CalibrationSettings = field(default_factory=CalibrationSettings)
    filter: FilterSettings = field(default_factory=FilterSettings)
    peaks: PeakDetectorSettings = field(default_factory=PeakDetectorSettings)
    finger: FingerDetectionSettings = field(default_factory=FingerDetectionSettings)
    spo2: SpO2Settings = field(default_factory=SpO2Settings)
    quality: QualitySettings = field(default_factory=QualitySettings)

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.filter.order not in (2, 4):
            raise ValueError(f"filter order must be 2 or 4, got {self.filter.order}")

    @property
    def buffer_size(self) -> int:
        return max(1, int(round(self.sample_rate * self.buffer_seconds)))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PipelineConfig":
        """
        Build configuration from a (YAML) mapping

        Unknown keys are logged and ignored; missing keys keep their defaults.

        Args:
            data: Mapping such as the ``ppg`` section of app_config.yaml

        Returns:
            PipelineConfig instance
        """
        return _build(cls, data or {}, "ppg")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _build(cls: Type[T], data: Mapping[str, Any], path: str) -> T:
    """Recursively instantiate a settings dataclass from a mapping."""
    known = {f.name: f for f in fields(cls)}
    kwargs: Dict[str, Any] = {}

    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {path}.{key}")
            continue

        factory = known[key].default_factory
        nested = factory if factory is not MISSING and is_dataclass(factory) else None
        if nested is not None and isinstance(value, Mapping):
            kwargs[key] = _build(nested, value, f"{path}.{key}")
        elif isinstance(value, Mapping):
            kwargs[key] = dict(value)
        elif isinstance(value, list):
            kwargs[key] = tuple(value)
        else:
            kwargs[key] = value

    return cls(**kwargs)
