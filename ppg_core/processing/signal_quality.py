"""
Signal Quality Validation
Eight-index signal quality assessment (SQI) for filtered PPG windows
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
from scipy import stats as scipy_stats

from ..data.models import ConfidenceLevel, SQIRawMetrics, SQIResult
from ..data.settings import QualitySettings

logger = logging.getLogger(__name__)


def _step_score(value: float, table: Sequence[tuple], above: float) -> float:
    """Score from an ascending ``(upper_bound, score)`` table."""
    for bound, score in table:
        if value < bound:
            return score
    return above


PERFUSION_TABLE = ((0.1, 0), (0.3, 20), (0.5, 40), (1.0, 60), (3.0, 80), (10.0, 100))
SKEWNESS_TABLE = ((0.5, 100), (1.0, 80), (1.5, 60), (2.0, 40))
KURTOSIS_TABLE = ((1.0, 100), (2.0, 80), (3.0, 60), (5.0, 40))
ENTROPY_TABLE = ((0.3, 100), (0.5, 80), (0.7, 60), (0.85, 40))
SNR_TABLE = ((1.0, 10), (2.0, 30), (3.0, 50), (5.0, 70), (8.0, 85), (15.0, 100))
PERIODICITY_TABLE = ((0.1, 10), (0.3, 30), (0.5, 50), (0.7, 70), (0.85, 85))
ZERO_CROSSING_TABLE = ((0.5, 10), (1.0, 40), (2.0, 70), (4.0, 100), (6.0, 80), (10.0, 50))


class MultiSQIValidator:
    """
    Combine eight quality indices into a global SQI and a confidence band

    Indices: perfusion, skewness, kurtosis, entropy, SNR, periodicity,
    zero-crossing rate and amplitude stability. Each is mapped to 0-100 with
    a step table and weighted into the global score.
    """

    def __init__(self, sample_rate: float = 30.0, settings: Optional[QualitySettings] = None):
        self.sample_rate = float(sample_rate)
        self.settings = settings or QualitySettings()

    def set_sample_rate(self, sample_rate: float) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = float(sample_rate)

    def validate(self, signal: Sequence[float], ac: float = 0.0, dc: float = 1.0) -> SQIResult:
        """
        Assess a window of filtered samples

        Args:
            signal: Filtered PPG window
            ac: AC amplitude of the raw channel
            dc: DC level of the raw channel

        Returns:
            SQIResult; short or flat windows yield the all-zero INVALID result
        """
        x = np.asarray(signal, dtype=np.float64)
        if x.size < self.settings.min_samples or not np.all(np.isfinite(x)):
            return SQIResult.invalid()
        if float(np.max(x)) == float(np.min(x)):
            return SQIResult.invalid()

        raw = SQIRawMetrics(
            perfusion_index=(ac / dc) * 100.0 if dc > 0 else 0.0,
            skewness=float(scipy_stats.skew(x)),
            kurtosis=float(scipy_stats.kurtosis(x, fisher=True)),
            entropy=self._shannon_entropy(x),
            snr=self._snr(x),
            periodicity=self._periodicity(x),
            zero_crossing_rate=self._zero_crossing_rate(x),
            stability=self._stability(x),
        )

        result = SQIResult(
            perfusion=_step_score(raw.perfusion_index, PERFUSION_TABLE, 90),
            skewness=_step_score(abs(raw.skewness), SKEWNESS_TABLE, 20),
            kurtosis=_step_score(abs(raw.kurtosis), KURTOSIS_TABLE, 20),
            entropy=_step_score(raw.entropy, ENTROPY_TABLE, 20),
            snr=_step_score(raw.snr, SNR_TABLE, 90),
            periodicity=_step_score(raw.periodicity, PERIODICITY_TABLE, 100),
            zero_crossing=_step_score(raw.zero_crossing_rate, ZERO_CROSSING_TABLE, 20),
            stability=float(round(raw.stability * 100)),
            raw=raw,
        )

        weights = self.settings.weights
        result.global_sqi = float(sum(
            getattr(result, name) * weight for name, weight in weights.items()
        ))
        result.confidence = self.determine_confidence(result.global_sqi)
        result.is_valid = result.global_sqi >= self.settings.low_threshold
        return result

    def determine_confidence(self, global_sqi: float) -> ConfidenceLevel:
        s = self.settings
        if global_sqi >= s.high_threshold:
            return ConfidenceLevel.HIGH
        if global_sqi >= s.medium_threshold:
            return ConfidenceLevel.MEDIUM
        if global_sqi >= s.low_threshold:
            return ConfidenceLevel.LOW
        return ConfidenceLevel.INVALID

    # ==================== INDICES ====================

    def _shannon_entropy(self, x: np.ndarray) -> float:
        """Histogram entropy normalised by log2(bins)."""
        bins = min(self.settings.max_entropy_bins, x.size // 5)
        if bins < 2:
            return 0.0
        counts, _ = np.histogram(x, bins=bins)
        return float(scipy_stats.entropy(counts, base=2) / np.log2(bins))

    @staticmethod
    def _snr(x: np.ndarray) -> float:
        std = float(np.std(x))
        if std == 0:
            return 0.0
        return float((np.max(x) - np.min(x)) / std)

    def _periodicity(self, x: np.ndarray) -> float:
        """Highest normalised autocorrelation inside the heart-rate lag band."""
        n = x.size
        if n < self.settings.periodicity_min_samples:
            return 0.0

        centred = x - np.mean(x)
        energy = float(np.dot(centred, centred))
        if energy == 0:
            return 0.0

        min_lag = int(np.floor(self.sample_rate * 60.0 / self.settings.max_bpm))
        max_lag = min(int(np.floor(self.sample_rate * 60.0 / self.settings.min_bpm)), n - 1)

        best = 0.0
        for lag in range(max(1, min_lag), max_lag + 1):
            corr = float(np.dot(centred[:n - lag], centred[lag:])) / energy
            best = max(best, corr)
        return best

    def _zero_crossing_rate(self, x: np.ndarray) -> float:
        """Mean crossings per second."""
        centred = x - np.mean(x)
        negative = centred < 0
        crossings = int(np.count_nonzero(negative[1:] != negative[:-1]))
        duration = x.size / self.sample_rate
        return crossings / duration

    def _stability(self, x: np.ndarray) -> float:
        """1 - coefficient of variation of per-second peak-to-peak amplitude."""
        segment = max(1, int(round(self.sample_rate)))
        n_segments = x.size // segment
        if n_segments < 2:
            return 1.0

        segments = x[:n_segments * segment].reshape(n_segments, segment)
        amplitudes = segments.max(axis=1) - segments.min(axis=1)
        mean = float(np.mean(amplitudes))
        cv = float(np.std(amplitudes)) / mean if mean > 0 else 1.0
        return max(0.0, 1.0 - cv)
