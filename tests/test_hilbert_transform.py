"""
Tests for the radix-2 FFT and Hilbert transform
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ppg_core.processing.hilbert_transform import (
    HilbertTransform, fft_radix2, ifft_radix2, next_power_of_two
)


def test_next_power_of_two():
    assert next_power_of_two(1) == 1
    assert next_power_of_two(90) == 128
    assert next_power_of_two(128) == 128


def test_fft_matches_numpy():
    rng = np.random.default_rng(3)
    x = rng.normal(size=64) + 1j * rng.normal(size=64)
    np.testing.assert_allclose(fft_radix2(x), np.fft.fft(x), atol=1e-9)
    np.testing.assert_allclose(ifft_radix2(fft_radix2(x)), x, atol=1e-9)


def test_fft_rejects_non_power_of_two():
    with pytest.raises(ValueError):
        fft_radix2(np.ones(90))


def test_bin_aligned_sinusoid_envelope_and_frequency():
    fs = 30.0
    n = 256
    freq = 10 * fs / n  # whole number of cycles in the window
    t = np.arange(n) / fs
    hilbert = HilbertTransform(fs)

    result = hilbert.transform(np.sin(2 * np.pi * freq * t))

    envelope = result.envelope
    assert np.std(envelope) / np.mean(envelope) < 0.05
    assert result.instantaneous_frequency[0] == 0.0
    np.testing.assert_allclose(result.instantaneous_frequency[1:], freq, rtol=0.02)


def test_padded_window_frequency_despite_edge_effect():
    fs = 30.0
    t = np.arange(90) / fs  # peak detector window, zero-padded to 128
    hilbert = HilbertTransform(fs)

    result = hilbert.transform(np.sin(2 * np.pi * 1.2 * t))

    assert np.median(result.instantaneous_frequency[1:]) == pytest.approx(1.2, rel=0.02)
    # Truncation distorts the envelope towards the window edges, the middle stays near 1
    assert 0.85 < np.median(result.envelope) < 1.15
    assert np.std(result.envelope) / np.mean(result.envelope) > 0.01


def test_real_part_of_analytic_signal_is_input():
    rng = np.random.default_rng(11)
    x = rng.normal(size=90)
    z = HilbertTransform().analytic_signal(x)
    assert z.shape == (90,)
    np.testing.assert_allclose(z.real, x, atol=1e-9)


def test_double_envelope_threshold_non_negative():
    rng = np.random.default_rng(5)
    x = rng.normal(size=90)
    result = HilbertTransform().double_envelope(x)

    assert result.threshold.shape == x.shape
    assert np.all(result.threshold >= 0)
    np.testing.assert_allclose(result.threshold, (result.envelope1 + result.envelope2) / 2)


def test_degenerate_inputs():
    hilbert = HilbertTransform()
    empty = hilbert.transform([])
    assert empty.envelope.size == 0
    assert empty.instantaneous_frequency.size == 0

    single = hilbert.transform([2.0])
    assert single.envelope[0] == pytest.approx(2.0)
    assert single.instantaneous_frequency.size == 0


def test_set_sample_rate_validates():
    hilbert = HilbertTransform()
    with pytest.raises(ValueError):
        hilbert.set_sample_rate(0)
    hilbert.set_sample_rate(60)
    assert hilbert.sample_rate == 60.0
