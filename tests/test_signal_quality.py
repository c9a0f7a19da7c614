"""
Tests for the multi-index signal quality validator
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ppg_core.data.models import ConfidenceLevel
from ppg_core.data.settings import DEFAULT_SQI_WEIGHTS, PipelineConfig, QualitySettings
from ppg_core.pipeline.ppg_pipeline import PPGPipeline
from ppg_core.processing.signal_quality import MultiSQIValidator


FS = 30.0


def _sine_window(n=90, freq_hz=1.2):
    return np.sin(2 * np.pi * freq_hz * np.arange(n) / FS)


def test_weights_sum_to_one():
    assert sum(DEFAULT_SQI_WEIGHTS.values()) == pytest.approx(1.0)


def test_short_window_is_invalid():
    result = MultiSQIValidator(FS).validate(_sine_window(29), ac=3, dc=100)
    assert result.confidence == ConfidenceLevel.INVALID
    assert result.global_sqi == 0
    assert not result.is_valid


def test_flat_window_is_invalid():
    result = MultiSQIValidator(FS).validate(np.full(90, 4.2), ac=3, dc=100)
    assert result.confidence == ConfidenceLevel.INVALID
    assert result.global_sqi == 0


def test_non_finite_window_is_invalid():
    window = _sine_window()
    window[10] = np.nan
    assert MultiSQIValidator(FS).validate(window).confidence == ConfidenceLevel.INVALID


def test_clean_pulse_is_high_quality():
    result = MultiSQIValidator(FS).validate(_sine_window(), ac=3.0, dc=100.0)

    assert result.perfusion == 100
    assert result.skewness == 100
    assert result.stability >= 95
    assert result.raw.periodicity > 0.6
    assert result.confidence == ConfidenceLevel.HIGH
    assert result.is_valid
    assert 0 <= result.global_sqi <= 100


def test_noise_scores_below_clean_pulse():
    rng = np.random.default_rng(42)
    validator = MultiSQIValidator(FS)

    clean = validator.validate(_sine_window(), ac=3.0, dc=100.0)
    noisy = validator.validate(rng.normal(size=90), ac=0.0, dc=100.0)

    assert noisy.perfusion == 0
    assert noisy.global_sqi < clean.global_sqi
    assert noisy.confidence != ConfidenceLevel.HIGH


def test_zero_dc_gives_zero_perfusion():
    result = MultiSQIValidator(FS).validate(_sine_window(), ac=3.0, dc=0.0)
    assert result.raw.perfusion_index == 0.0
    assert result.perfusion == 0


@pytest.mark.parametrize("score,expected", [
    (70.0, ConfidenceLevel.HIGH),
    (69.9, ConfidenceLevel.MEDIUM),
    (50.0, ConfidenceLevel.MEDIUM),
    (30.0, ConfidenceLevel.LOW),
    (29.9, ConfidenceLevel.INVALID),
])
def test_confidence_bands(score, expected):
    assert MultiSQIValidator(FS).determine_confidence(score) == expected


def test_partial_weight_override_keeps_defaults():
    settings = QualitySettings(weights={'perfusion': 0.5})
    assert settings.weights['perfusion'] == 0.5
    assert settings.weights['snr'] == DEFAULT_SQI_WEIGHTS['snr']


def test_to_dict_round_trips_confidence_value():
    data = MultiSQIValidator(FS).validate(_sine_window(), ac=3.0, dc=100.0).to_dict()
    assert data['confidence'] == 'HIGH'
    assert set(data) >= {'global_sqi', 'perfusion', 'periodicity', 'is_valid'}


def test_unknown_weight_is_dropped(caplog):
    with caplog.at_level("WARNING", logger="ppg_core.data.settings"):
        settings = QualitySettings(weights={'perfusoin': 0.25, 'snr': 0.2})

    assert set(settings.weights) == set(DEFAULT_SQI_WEIGHTS)
    assert settings.weights['snr'] == 0.2
    assert "perfusoin" in caplog.text

    result = MultiSQIValidator(FS, settings).validate(_sine_window(), ac=3.0, dc=100.0)
    assert result.global_sqi > 0


def test_misspelled_weight_in_config_keeps_pipeline_running():
    config = PipelineConfig.from_dict({'quality': {'weights': {'perfusoin': 0.25}}})
    pipeline = PPGPipeline(config)
    pipeline.start()

    frames = [pipeline.process_reading(180 + np.sin(i / 5.0), 90, 60, timestamp=i * 1000.0 / FS)
              for i in range(40)]

    assert all(frame is not None for frame in frames)
    assert frames[-1].finger_detected
    pipeline.dispose()
