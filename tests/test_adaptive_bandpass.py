"""
Tests for the streaming band-pass filter
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ppg_core.data.settings import FilterSettings
from ppg_core.processing.adaptive_bandpass import AdaptiveBandpass, design_notch


FS = 30.0


def _sine(freq_hz, seconds, fs=FS, amplitude=1.0, offset=0.0):
    t = np.arange(int(seconds * fs)) / fs
    return offset + amplitude * np.sin(2 * np.pi * freq_hz * t)


def _settled_amplitude(output, fs=FS, settle_s=8.0):
    tail = output[int(settle_s * fs):]
    return (tail.max() - tail.min()) / 2.0


def test_rejects_dc():
    bandpass = AdaptiveBandpass(FS)
    output = bandpass.filter_array(np.full(int(20 * FS), 100.0))
    assert abs(output[-1]) < 1e-3


def test_passes_pulse_band():
    bandpass = AdaptiveBandpass(FS)
    output = bandpass.filter_array(_sine(1.2, 20, offset=120.0))
    assert 0.9 < _settled_amplitude(output) < 1.05


def test_attenuates_above_cutoff():
    bandpass = AdaptiveBandpass(FS)
    output = bandpass.filter_array(_sine(10.0, 20))
    assert _settled_amplitude(output) < 0.3


def test_non_finite_input_yields_zero():
    bandpass = AdaptiveBandpass(FS)
    assert bandpass.filter(float('nan')) == 0.0
    assert bandpass.filter(float('inf')) == 0.0
    assert bandpass.filter(None) == 0.0


def test_reset_makes_output_deterministic():
    bandpass = AdaptiveBandpass(FS)
    signal = _sine(1.0, 5, offset=50.0) + _sine(3.0, 5, amplitude=0.3)

    first = bandpass.filter_array(signal)
    bandpass.reset()
    second = bandpass.filter_array(signal)

    np.testing.assert_allclose(first, second)


def test_invalid_construction():
    with pytest.raises(ValueError):
        AdaptiveBandpass(0)
    with pytest.raises(ValueError):
        AdaptiveBandpass(FS, FilterSettings(order=3))


def test_order_four_cascades_two_sections_per_stage():
    bandpass = AdaptiveBandpass(FS)
    assert len(bandpass.sections) == 2

    bandpass.set_filter_order(4)
    assert len(bandpass.sections) == 4
    assert bandpass.get_config()['order'] == 4

    with pytest.raises(ValueError):
        bandpass.set_filter_order(5)


def test_notch_only_above_100hz():
    bandpass = AdaptiveBandpass(FS, FilterSettings(notch_enabled=True))
    assert bandpass.get_config()['notch_active'] is False

    bandpass.set_sample_rate(250.0)
    config = bandpass.get_config()
    assert config['notch_active'] is True
    assert len(config['sections']) == 4

    bandpass.set_notch_enabled(False)
    assert bandpass.get_config()['notch_active'] is False


def test_notch_above_nyquist_is_skipped():
    assert design_notch(60.0, 100.0, 30.0) is None
    assert design_notch(50.0, 250.0, 30.0) is not None


def test_cutoff_above_nyquist_is_clipped():
    bandpass = AdaptiveBandpass(8.0)  # Nyquist 4 Hz, low-pass at 4.5 Hz
    output = bandpass.filter_array(_sine(1.0, 10, fs=8.0))
    assert np.all(np.isfinite(output))


def test_first_sample_primes_steady_state():
    bandpass = AdaptiveBandpass(FS, FilterSettings(order=4))
    assert abs(bandpass.filter(111.5)) < 1e-9

    output = bandpass.filter_array(np.full(60, 111.5))
    assert np.max(np.abs(output)) < 1e-6

    bandpass.reset()
    assert abs(bandpass.filter(50.0)) < 1e-9


def test_pulse_on_large_offset_settles_within_two_seconds():
    bandpass = AdaptiveBandpass(FS)
    output = bandpass.filter_array(_sine(1.0, 10, amplitude=2.8, offset=111.5))

    # No high-pass ringing from the DC level: the waveform stays centred on zero
    early = output[30:60]
    assert abs(early.mean()) < 1.0
    assert np.max(np.abs(output)) < 5.0
