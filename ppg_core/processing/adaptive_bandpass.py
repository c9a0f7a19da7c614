"""Streaming Butterworth band-pass (plus optional mains notch) built from biquad sections."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
from scipy import signal as scipy_signal

from ..data.settings import FilterSettings

logger = logging.getLogger(__name__)


@dataclass
class BiquadSection:
    """Direct-form I second-order section with its own delay line."""
    name: str
    b: np.ndarray
    a: np.ndarray
    x1: float = 0.0
    x2: float = 0.0
    y1: float = 0.0
    y2: float = 0.0

    def process(self, x: float) -> float:
        b0, b1, b2 = self.b
        _, a1, a2 = self.a
        y = b0 * x + b1 * self.x1 + b2 * self.x2 - a1 * self.y1 - a2 * self.y2
        self.x2, self.x1 = self.x1, x
        self.y2, self.y1 = self.y1, y
        return y

    def clear(self) -> None:
        self.x1 = self.x2 = self.y1 = self.y2 = 0.0

    def prime(self, x0: float) -> float:
        """
        Load the delay line with the steady state for a constant input ``x0``

        Returns:
            The settled output (x0 times the DC gain), the input of the next section
        """
        y0 = x0 * float(np.sum(self.b)) / float(np.sum(self.a))
        self.x1 = self.x2 = x0
        self.y1 = self.y2 = y0
        return y0


def design_butterworth(cutoff_hz: float, sample_rate: float, btype: str) -> BiquadSection:
    """
    Second-order Butterworth section via the bilinear transform

    Args:
        cutoff_hz: -3 dB frequency
        sample_rate: Sampling rate (Hz)
        btype: 'highpass' or 'lowpass'

    Returns:
        BiquadSection with normalised coefficients (a0 == 1)
    """
    nyquist = sample_rate / 2.0
    if cutoff_hz >= nyquist:
        clipped = 0.99 * nyquist
        logger.warning(f"{btype} cutoff {cutoff_hz} Hz above Nyquist {nyquist} Hz, using {clipped:.2f} Hz")
        cutoff_hz = clipped
    b, a = scipy_signal.butter(2, cutoff_hz, btype=btype, fs=sample_rate)
    return BiquadSection(name=f"{btype}_{cutoff_hz:g}", b=np.asarray(b, dtype=np.float64),
                         a=np.asarray(a, dtype=np.float64))


def design_notch(freq_hz: float, sample_rate: float, quality: float) -> Optional[BiquadSection]:
    """Notch section at ``freq_hz``; None when the frequency is not below Nyquist."""
    if freq_hz <= 0 or freq_hz >= sample_rate / 2.0:
        return None
    b, a = scipy_signal.iirnotch(freq_hz, quality, fs=sample_rate)
    return BiquadSection(name=f"notch_{freq_hz:g}", b=np.asarray(b, dtype=np.float64),
                         a=np.asarray(a, dtype=np.float64))


class AdaptiveBandpass:
    """
    Sample-by-sample band-pass filter for the pulse band (0.4 - 4.5 Hz)

    Cascade order: [notch 50/60 Hz] -> high-pass (x2 for order 4) -> low-pass (x2 for order 4).
    The notch stages only exist when enabled and the sample rate exceeds 100 Hz.
    """

    def __init__(self, sample_rate: float = 30.0, settings: Optional[FilterSettings] = None) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.settings = settings or FilterSettings()
        if self.settings.order not in (2, 4):
            raise ValueError(f"filter order must be 2 or 4, got {self.settings.order}")

        self.sample_rate = float(sample_rate)
        self.order = self.settings.order
        self.notch_enabled = self.settings.notch_enabled
        self.sections: List[BiquadSection] = []
        self._primed = False
        self._design()

    def _design(self) -> None:
        s = self.settings
        sections: List[BiquadSection] = []

        if self.notch_enabled and self.sample_rate > s.notch_min_sample_rate:
            for freq in s.notch_frequencies:
                notch = design_notch(freq, self.sample_rate, s.notch_q)
                if notch is not None:
                    sections.append(notch)

        stages = 2 if self.order == 4 else 1
        for _ in range(stages):
            sections.append(design_butterworth(s.low_cutoff_hz, self.sample_rate, 'highpass'))
        for _ in range(stages):
            sections.append(design_butterworth(s.high_cutoff_hz, self.sample_rate, 'lowpass'))

        self.sections = sections
        self._primed = False
        logger.debug(f"Designed band-pass: {[sec.name for sec in sections]} @ {self.sample_rate} Hz")

    # ==================== FILTERING ====================

    def filter(self, value: float) -> float:
        """
        Filter one sample. Non-finite input or runaway section output yields 0.

        The first finite sample after construction or reset() primes every
        section at steady state, so a large DC level does not ring through
        the high-pass stage.
        """
        try:
            x = float(value)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(x):
            return 0.0

        if not self._primed:
            level = x
            for section in self.sections:
                level = section.prime(level)
            self._primed = True

        limit = self.settings.max_abs_output
        for section in self.sections:
            x = section.process(x)
            if not math.isfinite(x) or abs(x) > limit:
                x = 0.0
        return x

    def filter_array(self, values: Iterable[float]) -> np.ndarray:
        return np.array([self.filter(v) for v in values], dtype=np.float64)

    # ==================== CONFIGURATION ====================

    def reset(self) -> None:
        for section in self.sections:
            section.clear()
        self._primed = False

    def set_sample_rate(self, sample_rate: float) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = float(sample_rate)
        self._design()
        logger.info(f"Band-pass sample rate set to {self.sample_rate} Hz")

    def set_filter_order(self, order: int) -> None:
        if order not in (2, 4):
            raise ValueError(f"filter order must be 2 or 4, got {order}")
        self.order = order
        self._design()

    def set_notch_enabled(self, enabled: bool) -> None:
        self.notch_enabled = bool(enabled)
        self._design()

    def get_config(self) -> Dict[str, Any]:
        return {
            'sample_rate': self.sample_rate,
            'low_cutoff_hz': self.settings.low_cutoff_hz,
            'high_cutoff_hz': self.settings.high_cutoff_hz,
            'order': self.order,
            'notch_enabled': self.notch_enabled,
            'notch_active': any(sec.name.startswith('notch') for sec in self.sections),
            'sections': [sec.name for sec in self.sections],
        }
