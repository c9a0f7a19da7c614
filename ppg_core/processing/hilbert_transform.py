"""
Hilbert Transform
Analytic signal, envelope and instantaneous frequency via a radix-2 FFT
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class HilbertResult:
    envelope: np.ndarray = field(default_factory=lambda: np.empty(0))
    phase: np.ndarray = field(default_factory=lambda: np.empty(0))
    analytic_signal: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.complex128))
    instantaneous_frequency: np.ndarray = field(default_factory=lambda: np.empty(0))


@dataclass
class DoubleEnvelope:
    envelope1: np.ndarray
    envelope2: np.ndarray
    threshold: np.ndarray


def next_power_of_two(n: int) -> int:
    power = 1
    while power < n:
        power <<= 1
    return power


def fft_radix2(values: np.ndarray) -> np.ndarray:
    """
    Recursive Cooley-Tukey FFT

    Args:
        values: Complex or real samples, length must be a power of two

    Returns:
        Complex spectrum of the same length
    """
    x = np.asarray(values, dtype=np.complex128)
    n = x.shape[0]
    if n <= 1:
        return x.copy()
    if n & (n - 1):
        raise ValueError(f"FFT length must be a power of two, got {n}")

    even = fft_radix2(x[0::2])
    odd = fft_radix2(x[1::2])
    twiddled = np.exp(-2j * np.pi * np.arange(n // 2) / n) * odd
    return np.concatenate([even + twiddled, even - twiddled])


def ifft_radix2(spectrum: np.ndarray) -> np.ndarray:
    """Inverse FFT using the conjugation identity."""
    X = np.asarray(spectrum, dtype=np.complex128)
    n = X.shape[0]
    if n == 0:
        return X.copy()
    return np.conj(fft_radix2(np.conj(X))) / n


class HilbertTransform:
    """Analytic-signal engine used by the peak detector's double-envelope threshold."""

    def __init__(self, sample_rate: float = 30.0):
        self.sample_rate = float(sample_rate)

    def set_sample_rate(self, sample_rate: float) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = float(sample_rate)

    def analytic_signal(self, signal) -> np.ndarray:
        """
        Analytic signal via zero-padded FFT (next power of two)

        The window is not tapered, so a window that does not hold a whole
        number of cycles gets an envelope that bulges near its ends; phase and
        instantaneous frequency stay close to the true tone in the interior.
        """
        x = np.asarray(signal, dtype=np.float64)
        n = x.shape[0]
        if n == 0:
            return np.empty(0, dtype=np.complex128)

        padded_length = next_power_of_two(n)
        padded = np.zeros(padded_length, dtype=np.float64)
        padded[:n] = x

        spectrum = fft_radix2(padded)

        # DC and Nyquist bins kept, positive frequencies doubled, negative ones removed
        kernel = np.zeros(padded_length, dtype=np.float64)
        kernel[0] = 1.0
        if padded_length > 1:
            half = padded_length // 2
            kernel[1:half] = 2.0
            kernel[half] = 1.0

        return ifft_radix2(spectrum * kernel)[:n]

    def transform(self, signal) -> HilbertResult:
        """
        Compute analytic signal, envelope, phase and instantaneous frequency

        Args:
            signal: Real-valued samples

        Returns:
            HilbertResult (empty arrays for empty input)
        """
        z = self.analytic_signal(signal)
        if z.size == 0:
            return HilbertResult()

        phase = np.angle(z)
        return HilbertResult(
            envelope=np.abs(z),
            phase=phase,
            analytic_signal=z,
            instantaneous_frequency=self._instantaneous_frequency(phase),
        )

    def envelope(self, signal) -> np.ndarray:
        return np.abs(self.analytic_signal(signal))

    def double_envelope(self, signal) -> DoubleEnvelope:
        """Envelope of the envelope; the adaptive threshold is their mean."""
        envelope1 = self.envelope(signal)
        envelope2 = self.envelope(envelope1)
        return DoubleEnvelope(
            envelope1=envelope1,
            envelope2=envelope2,
            threshold=(envelope1 + envelope2) / 2.0,
        )

    def _instantaneous_frequency(self, phase: np.ndarray) -> np.ndarray:
        if phase.size < 2:
            return np.empty(0)
        d_phase = np.diff(phase)
        # Wrap into [-pi, pi]
        d_phase = (d_phase + np.pi) % (2 * np.pi) - np.pi
        freq = np.empty(phase.size, dtype=np.float64)
        freq[0] = 0.0
        freq[1:] = d_phase / (2 * np.pi) * self.sample_rate
        return freq
