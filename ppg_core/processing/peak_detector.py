"""Heartbeat peak detection with a Hilbert double-envelope (HDEM) adaptive threshold."""
from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional, Sequence

import numpy as np

from ..data.models import HRVMetrics, Peak, PeakDetectionResult, PeakSampleResult
from ..data.settings import PeakDetectorSettings
from .hilbert_transform import HilbertTransform

logger = logging.getLogger(__name__)


def calculate_hrv(rr_intervals: Sequence[float]) -> HRVMetrics:
    """
    Time-domain HRV from RR intervals

    Args:
        rr_intervals: RR intervals in ms

    Returns:
        HRVMetrics (all zero for fewer than 3 intervals)
    """
    if len(rr_intervals) < 3:
        return HRVMetrics()

    rr = np.asarray(rr_intervals, dtype=np.float64)
    diffs = np.abs(np.diff(rr))
    n_diffs = diffs.size

    return HRVMetrics(
        sdnn=float(np.std(rr)),
        rmssd=float(np.sqrt(np.sum(diffs ** 2) / n_diffs)),
        pnn50=float(np.count_nonzero(diffs > 50.0) / n_diffs * 100.0),
    )


class PeakDetectorHDEM:
    """
    Streaming and batch systolic peak detector

    The streaming path looks a few samples behind the newest one so that a
    local maximum can be confirmed, gates candidates on the double-envelope
    threshold, the window mean and an SNR estimate, and enforces a refractory
    period between beats.
    """

    def __init__(self, sample_rate: float = 30.0, settings: Optional[PeakDetectorSettings] = None):
        self.settings = settings or PeakDetectorSettings()
        self.sample_rate = float(sample_rate)
        self.hilbert = HilbertTransform(self.sample_rate)

        self._buffer: Deque[float] = deque(maxlen=self.settings.buffer_size)
        self._rr_history: Deque[float] = deque(maxlen=self.settings.max_rr_history)
        self._last_peak_time: Optional[float] = None
        self._last_peak_index: int = 0
        self._smoothed_bpm: float = 0.0
        self._instant_bpm: float = 0.0
        self._samples_seen: int = 0

    # ==================== BATCH ====================

    def detect_peaks(self, signal: Sequence[float],
                     timestamps: Optional[Sequence[float]] = None) -> PeakDetectionResult:
        """
        Detect all peaks of a complete segment

        Args:
            signal: Filtered PPG samples
            timestamps: Per-sample timestamps in ms (defaults to index / sample_rate)

        Returns:
            PeakDetectionResult (empty for short segments)
        """
        s = self.settings
        x = np.asarray(signal, dtype=np.float64)
        if x.size < s.batch_min_samples:
            return PeakDetectionResult()

        threshold = self.hilbert.double_envelope(x).threshold
        mean = float(np.mean(x))
        std = float(np.std(x))
        min_interval = int(np.floor(self.sample_rate * s.min_rr_ms / 1000.0))

        peaks: List[Peak] = []
        last_peak_idx = -min_interval
        for i in range(1, x.size - 1):
            if i - last_peak_idx < min_interval:
                continue
            if self._candidate_snr(x, threshold, i, mean, std) is None:
                continue

            end = min(i + s.batch_refine_window, x.size)
            max_idx = i + int(np.argmax(x[i:end]))
            max_val = float(x[max_idx])

            local_threshold = float(threshold[max_idx])
            confidence = min(1.0, max_val / local_threshold) if local_threshold > 0 else 0.5
            timestamp = (float(timestamps[max_idx]) if timestamps is not None
                         else max_idx * 1000.0 / self.sample_rate)

            peaks.append(Peak(index=max_idx, timestamp=timestamp,
                              amplitude=max_val, confidence=confidence))
            last_peak_idx = max_idx

        rr_intervals = []
        for prev, curr in zip(peaks, peaks[1:]):
            rr = curr.timestamp - prev.timestamp
            if s.min_rr_ms <= rr <= s.max_rr_ms:
                rr_intervals.append(rr)

        instant_bpm = 60000.0 / rr_intervals[-1] if rr_intervals else 0.0
        average_bpm = 60000.0 / float(np.mean(rr_intervals)) if rr_intervals else 0.0

        return PeakDetectionResult(
            peaks=peaks,
            rr_intervals=rr_intervals,
            instant_bpm=instant_bpm,
            average_bpm=average_bpm,
            hrv=calculate_hrv(rr_intervals),
            threshold=threshold.tolist(),
        )

    # ==================== STREAMING ====================

    def process_sample(self, value: float, timestamp: float,
                       perfusion_index: Optional[float] = None) -> PeakSampleResult:
        """
        Feed one filtered sample

        Args:
            value: Filtered PPG sample
            timestamp: Sample time in ms
            perfusion_index: Optional PI (%) gate

        Returns:
            PeakSampleResult for this sample
        """
        s = self.settings
        self._buffer.append(float(value))
        self._samples_seen += 1

        if len(self._buffer) < s.min_samples:
            return self._no_peak()

        if perfusion_index is not None and not (
                s.min_perfusion_index <= perfusion_index <= s.max_perfusion_index):
            return self._no_peak()

        window = np.asarray(self._buffer, dtype=np.float64)[-s.analysis_window:]
        threshold = self.hilbert.double_envelope(window).threshold
        mean = float(np.mean(window))
        std = float(np.std(window))

        check_idx = window.size - s.check_offset
        time_since_last = (timestamp - self._last_peak_time
                           if self._last_peak_time is not None else None)

        if time_since_last is not None and time_since_last < s.min_rr_ms:
            return self._no_peak()
        if not 0 < check_idx < window.size - 1:
            return self._no_peak()

        snr = self._candidate_snr(window, threshold, check_idx, mean, std)
        if snr is None:
            return self._no_peak()
        amplitude = float(window[check_idx])

        confidence = min(1.0, snr / s.snr_confidence_scale)
        rr_interval = None
        if time_since_last is not None and time_since_last <= s.max_rr_ms:
            rr_interval = float(time_since_last)
            self._record_rr(rr_interval)

        self._last_peak_time = float(timestamp)
        self._last_peak_index = self._samples_seen - s.check_offset
        peak = Peak(index=self._last_peak_index, timestamp=float(timestamp),
                    amplitude=amplitude, confidence=confidence)

        logger.debug(f"Peak @ {timestamp:.0f} ms amp={amplitude:.4f} snr={snr:.2f} "
                     f"rr={rr_interval} bpm={self.current_bpm}")

        return PeakSampleResult(is_peak=True, bpm=self.current_bpm, rr_interval=rr_interval,
                                confidence=confidence, peak=peak)

    def _candidate_snr(self, x: np.ndarray, threshold: np.ndarray, idx: int,
                       mean: float, std: float) -> Optional[float]:
        """
        SNR of the sample at ``idx`` when it qualifies as a beat, else None

        A candidate is a threshold up-crossing or a local maximum whose
        amplitude clears a fraction of the threshold and the mean, with
        (amplitude - mean) / std above the minimum SNR.
        """
        s = self.settings
        amplitude = float(x[idx])
        crossed_up = x[idx - 1] < threshold[idx - 1] and amplitude >= threshold[idx]
        local_max = amplitude > x[idx - 1] and amplitude >= x[idx + 1]
        if not (crossed_up or local_max):
            return None

        snr = (amplitude - mean) / std if std > 0 else 0.0
        if amplitude <= threshold[idx] * s.threshold_ratio or amplitude <= mean * s.mean_ratio:
            return None
        if snr <= s.min_snr:
            return None
        return snr

    def _record_rr(self, rr_interval: float) -> None:
        self._rr_history.append(rr_interval)
        self._instant_bpm = 60000.0 / rr_interval
        if self._smoothed_bpm == 0:
            self._smoothed_bpm = self._instant_bpm
        else:
            alpha = self.settings.bpm_smoothing
            self._smoothed_bpm = self._smoothed_bpm * alpha + self._instant_bpm * (1.0 - alpha)

    def _no_peak(self) -> PeakSampleResult:
        return PeakSampleResult(is_peak=False, bpm=self.current_bpm)

    # ==================== STATE ====================

    def calculate_hrv(self, rr_intervals: Optional[Sequence[float]] = None) -> HRVMetrics:
        return calculate_hrv(self.rr_intervals if rr_intervals is None else rr_intervals)

    @property
    def rr_intervals(self) -> List[float]:
        return list(self._rr_history)

    @property
    def current_bpm(self) -> int:
        return int(round(self._smoothed_bpm))

    @property
    def instant_bpm(self) -> float:
        """BPM from the most recent RR interval."""
        return self._instant_bpm

    @property
    def last_peak_time(self) -> Optional[float]:
        return self._last_peak_time

    def set_sample_rate(self, sample_rate: float) -> None:
        self.hilbert.set_sample_rate(sample_rate)
        self.sample_rate = float(sample_rate)

    def reset(self) -> None:
        self._buffer.clear()
        self._rr_history.clear()
        self._last_peak_time = None
        self._last_peak_index = 0
        self._smoothed_bpm = 0.0
        self._instant_bpm = 0.0
        self._samples_seen = 0
