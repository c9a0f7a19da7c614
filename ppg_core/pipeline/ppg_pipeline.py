"""
PPG Pipeline
Per-frame orchestration: finger detection, calibration, buffering, filtering,
peak detection, quality validation, SpO2 and HRV
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

import numpy as np

from ..data.models import (
    ConfidenceLevel,
    PeakSampleResult,
    PipelineEvent,
    PipelineEventType,
    PipelineState,
    ProcessedPPGFrame,
    RGBCalibration,
)
from ..data.settings import PipelineConfig
from ..processing.adaptive_bandpass import AdaptiveBandpass
from ..processing.finger_detector import FingerDetector
from ..processing.peak_detector import PeakDetectorHDEM
from ..processing.rgb_calibrator import RGBCalibrator
from ..processing.signal_quality import MultiSQIValidator
from ..processing.spo2 import calculate_ratio_r, compute_ac_dc, estimate_spo2
from ..utils.decorators import timing

logger = logging.getLogger(__name__)

EventCallback = Callable[[PipelineEvent], None]
FrameCallback = Callable[[ProcessedPPGFrame], None]


def extract_roi(pixels: np.ndarray, width: Optional[int] = None, height: Optional[int] = None,
                channels: int = 4, roi_fraction: float = 0.85, stride: int = 4) -> Tuple[float, float, float]:
    """
    Average R, G, B over a centred square region of interest

    Args:
        pixels: (H, W, C>=3) array, or a flat interleaved buffer with width/height given
        width: Frame width for flat buffers
        height: Frame height for flat buffers
        channels: Channels per pixel for flat buffers (RGBA by default)
        roi_fraction: ROI side relative to min(width, height)
        stride: Sample every ``stride`` pixels in both axes

    Returns:
        (red, green, blue) averages; zeros for an empty ROI
    """
    frame = np.asarray(pixels)
    if frame.ndim == 1:
        if width is None or height is None:
            raise ValueError("width and height are required for flat pixel buffers")
        frame = frame.reshape(height, width, channels)
    if frame.ndim != 3 or frame.shape[2] < 3:
        raise ValueError(f"expected (H, W, C>=3) pixels, got shape {frame.shape}")

    h, w = frame.shape[:2]
    roi_size = min(w, h) * roi_fraction
    start_x = int((w - roi_size) // 2)
    start_y = int((h - roi_size) // 2)
    end_x = start_x + int(roi_size)
    end_y = start_y + int(roi_size)

    roi = frame[start_y:end_y:stride, start_x:end_x:stride, :3]
    if roi.size == 0:
        return 0.0, 0.0, 0.0
    means = roi.reshape(-1, 3).astype(np.float64).mean(axis=0)
    return float(means[0]), float(means[1]), float(means[2])


class PPGPipeline:
    """
    Camera PPG processing pipeline

    Single-threaded: every stage runs inside ``process_frame`` /
    ``process_reading`` and event listeners are invoked inline, in
    registration order.

    Attributes:
        config (PipelineConfig): Tunable settings
        calibrator (RGBCalibrator): Channel calibration
        bandpass (AdaptiveBandpass): Pulse-band filter
        peak_detector (PeakDetectorHDEM): Beat detection and HRV
        sqi_validator (MultiSQIValidator): Signal quality
        finger_detector (FingerDetector): Finger presence debounce
        on_frame_processed (Callable): Optional per-frame callback
    """

    def __init__(self, config: Optional[PipelineConfig] = None,
                 on_frame_processed: Optional[FrameCallback] = None):
        self.config = config or PipelineConfig()
        cfg = self.config

        self.calibrator = RGBCalibrator(cfg.calibration)
        self.bandpass = AdaptiveBandpass(cfg.sample_rate, cfg.filter)
        self.peak_detector = PeakDetectorHDEM(cfg.sample_rate, cfg.peaks)
        self.sqi_validator = MultiSQIValidator(cfg.sample_rate, cfg.quality)
        self.finger_detector = FingerDetector(cfg.finger)
        self.on_frame_processed = on_frame_processed

        self._red: Deque[float] = deque(maxlen=cfg.buffer_size)
        self._green: Deque[float] = deque(maxlen=cfg.buffer_size)
        self._blue: Deque[float] = deque(maxlen=cfg.buffer_size)
        self._filtered: Deque[float] = deque(maxlen=cfg.buffer_size)

        self.red_ac = 0.0
        self.red_dc = 0.0
        self.green_ac = 0.0
        self.green_dc = 0.0

        self._state = PipelineState()
        self._listeners: Dict[PipelineEventType, List[EventCallback]] = {}
        self._last_log_time: Optional[float] = None
        self._last_vitals_time: Optional[float] = None

        logger.info(f"PPG pipeline initialised @ {cfg.sample_rate} Hz "
                    f"(buffer {cfg.buffer_size} samples, filter order {cfg.filter.order})")

    # ==================== LIFECYCLE ====================

    def start(self) -> None:
        if self._state.is_processing:
            return
        self._state.is_processing = True
        self._state.frames_processed = 0
        logger.info("PPG processing started")

    def stop(self) -> None:
        self._state.is_processing = False
        logger.info("PPG processing stopped")

    def start_calibration(self) -> None:
        """Begin a zero-light calibration pass (camera ready, no finger)."""
        self.calibrator.begin_calibration()
        self._state.is_calibrating = True
        self._state.calibration_progress = 0
        self._emit(PipelineEventType.CALIBRATION_START, {})

    def force_calibration(self) -> None:
        """Instant calibration from the most recent buffered values."""
        if not self._red or not self._green:
            logger.debug("force_calibration ignored: no buffered samples")
            return
        blue = self._blue[-1] if self._blue else 0.0
        self.calibrator.force_calibrate_from_sample(self._red[-1], self._green[-1], blue)
        self._state.is_calibrating = False
        self._state.calibration_progress = 100
        self._emit(PipelineEventType.CALIBRATION_COMPLETE,
                   {'calibration': self.calibrator.calibration.to_dict()})

    def reset(self, full: bool = False) -> None:
        """
        Clear buffers and per-stage state

        Args:
            full: Also drop the channel calibration
        """
        self._red.clear()
        self._green.clear()
        self._blue.clear()
        self._filtered.clear()
        self.red_ac = self.red_dc = self.green_ac = self.green_dc = 0.0

        self.finger_detector.reset()
        self.bandpass.reset()
        self.peak_detector.reset()
        if full:
            self.calibrator.reset()

        # Running flag survives a reset; only stop()/dispose() clear it
        running = self._state.is_processing
        self._state.reset()
        self._state.is_processing = running
        self._last_log_time = None
        self._last_vitals_time = None
        logger.info(f"PPG pipeline reset ({'full' if full else 'calibration kept'})")

    def dispose(self) -> None:
        self.stop()
        self.reset(full=True)
        self._listeners.clear()
        self.on_frame_processed = None

    # ==================== EVENTS ====================

    def on(self, event: Union[PipelineEventType, str], callback: EventCallback) -> EventCallback:
        """
        Subscribe to a pipeline event

        Returns:
            The callback, usable as a handle for ``off``
        """
        event_type = PipelineEventType(event)
        self._listeners.setdefault(event_type, []).append(callback)
        return callback

    def off(self, event: Union[PipelineEventType, str], callback: EventCallback) -> bool:
        listeners = self._listeners.get(PipelineEventType(event), [])
        if callback in listeners:
            listeners.remove(callback)
            return True
        return False

    def _emit(self, event_type: PipelineEventType, data: Dict[str, Any],
              timestamp: Optional[float] = None) -> None:
        event = PipelineEvent(type=event_type,
                              timestamp=timestamp if timestamp is not None else time.time() * 1000.0,
                              data=data)
        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in {event_type.value} listener: {e}")

    # ==================== FRAME PROCESSING ====================

    @timing(log_level="DEBUG")
    def process_frame(self, pixels, timestamp: Optional[float] = None,
                      width: Optional[int] = None, height: Optional[int] = None,
                      channels: int = 4) -> Optional[ProcessedPPGFrame]:
        """
        Process one camera frame

        Args:
            pixels: (H, W, C>=3) array or flat RGBA buffer (with width/height)
            timestamp: Frame time in ms (defaults to wall clock)

        Returns:
            ProcessedPPGFrame, or None while the pipeline is stopped
        """
        if not self._state.is_processing:
            return None
        red, green, blue = extract_roi(pixels, width, height, channels,
                                       self.config.roi_fraction, self.config.roi_stride)
        return self.process_reading(red, green, blue, timestamp)

    def process_reading(self, red: float, green: float, blue: float,
                        timestamp: Optional[float] = None) -> Optional[ProcessedPPGFrame]:
        """
        Process one pre-averaged ROI reading

        Args:
            red: Raw red average
            green: Raw green average
            blue: Raw blue average
            timestamp: Reading time in ms (defaults to wall clock)

        Returns:
            ProcessedPPGFrame, or None while the pipeline is stopped
        """
        if not self._state.is_processing:
            return None

        cfg = self.config
        if timestamp is None:
            timestamp = time.time() * 1000.0
        self._state.frames_processed += 1

        finger_detected = self.finger_detector.update(red, green)
        self._update_calibration(red, green, blue, finger_detected, timestamp)

        calibrated = self.calibrator.apply(red, green, blue)
        self._red.append(calibrated.linear_red)
        self._green.append(calibrated.linear_green)
        self._blue.append(calibrated.linear_blue)

        if len(self._red) >= cfg.min_acdc_samples:
            self._update_ac_dc()

        perfusion_index = (self.red_ac / self.red_dc) * 100.0 if self.red_dc > 0 else 0.0
        pi_min, pi_max = cfg.pi_valid_range
        pi_valid = pi_min <= perfusion_index <= pi_max

        # Red is primary; green takes over when red saturates
        source = calibrated.linear_green if red > cfg.saturation_switch_red else calibrated.linear_red
        filtered = self.bandpass.filter(source)
        self._filtered.append(filtered)

        peak_result = PeakSampleResult()
        if finger_detected:
            peak_result = self.peak_detector.process_sample(filtered, timestamp, perfusion_index)

        window = list(self._filtered)[-cfg.sqi_window:]
        sqi = self.sqi_validator.validate(window, self.red_ac, self.red_dc)

        ratio_r = calculate_ratio_r(self.red_ac, self.red_dc, self.green_ac, self.green_dc)
        spo2 = estimate_spo2(ratio_r, perfusion_index, cfg.spo2)

        rr_intervals = self.peak_detector.rr_intervals
        hrv = self.peak_detector.calculate_hrv(rr_intervals)

        confidence = sqi.confidence if finger_detected and pi_valid else ConfidenceLevel.INVALID
        previous_confidence = self._state.last_confidence
        self._state.last_bpm = peak_result.bpm
        self._state.last_spo2 = spo2
        self._state.last_confidence = confidence

        if peak_result.is_peak:
            self._emit(PipelineEventType.PEAK_DETECTED,
                       {'timestamp': timestamp, 'bpm': peak_result.bpm}, timestamp)
        if confidence != previous_confidence:
            self._emit(PipelineEventType.QUALITY_CHANGE,
                       {'previous': previous_confidence.value, 'current': confidence.value,
                        'global_sqi': sqi.global_sqi}, timestamp)
        self._maybe_emit_vitals(timestamp, peak_result.bpm, spo2, confidence,
                                perfusion_index, sqi.global_sqi)
        self._maybe_log_summary(timestamp, finger_detected, perfusion_index, pi_valid,
                                ratio_r, spo2, peak_result.bpm, sqi.global_sqi, confidence)

        frame = ProcessedPPGFrame(
            timestamp=timestamp,
            filtered_value=filtered,
            raw_value=source,
            finger_detected=finger_detected,
            calibrated=calibrated,
            red_ac=self.red_ac,
            red_dc=self.red_dc,
            green_ac=self.green_ac,
            green_dc=self.green_dc,
            perfusion_index=perfusion_index,
            ratio_r=ratio_r,
            is_peak=peak_result.is_peak,
            instant_bpm=self.peak_detector.instant_bpm if finger_detected else 0.0,
            smoothed_bpm=self.peak_detector.current_bpm,
            rr_interval=peak_result.rr_interval,
            rr_intervals=rr_intervals,
            hrv=hrv,
            sqi=sqi,
            confidence=confidence,
            spo2=spo2,
        )

        if self.on_frame_processed:
            try:
                self.on_frame_processed(frame)
            except Exception as e:
                logger.error(f"Error in frame callback: {e}")

        return frame

    def _update_calibration(self, red: float, green: float, blue: float,
                            finger_detected: bool, timestamp: float) -> None:
        if self.calibrator.is_calibrated:
            return

        if finger_detected and red > self.config.calibration.instant_min_red:
            self.calibrator.force_calibrate_from_sample(red, green, blue)
            self._state.is_calibrating = False
            self._state.calibration_progress = 100
            self._emit(PipelineEventType.CALIBRATION_COMPLETE,
                       {'calibration': self.calibrator.calibration.to_dict()}, timestamp)
        elif self._state.is_calibrating:
            complete = self.calibrator.add_sample(red, green, blue)
            self._state.calibration_progress = self.calibrator.progress
            if complete:
                self._state.is_calibrating = False
                self._emit(PipelineEventType.CALIBRATION_COMPLETE,
                           {'calibration': self.calibrator.calibration.to_dict()}, timestamp)

    def _update_ac_dc(self) -> None:
        cfg = self.config
        size = min(cfg.acdc_window, len(self._red))
        red_window = list(self._red)[-size:]
        green_window = list(self._green)[-size:]

        red_ac, self.red_dc = compute_ac_dc(red_window)
        green_ac, self.green_dc = compute_ac_dc(green_window)
        if self.red_dc < cfg.min_dc or self.green_dc < cfg.min_dc:
            return

        self.red_ac, self.green_ac = red_ac, green_ac
        if (self.red_ac / self.red_dc < cfg.min_ac_dc_ratio
                or self.green_ac / self.green_dc < cfg.min_ac_dc_ratio):
            self.red_ac = 0.0
            self.green_ac = 0.0

    def _maybe_emit_vitals(self, timestamp: float, bpm: int, spo2: int,
                           confidence: ConfidenceLevel, perfusion_index: float,
                           global_sqi: float) -> None:
        if self._last_vitals_time is None:
            self._last_vitals_time = timestamp
            return
        if timestamp - self._last_vitals_time < self.config.vitals_interval_ms:
            return
        self._last_vitals_time = timestamp
        self._emit(PipelineEventType.VITALS_UPDATE, {
            'bpm': bpm,
            'spo2': spo2,
            'confidence': confidence.value,
            'perfusion_index': perfusion_index,
            'global_sqi': global_sqi,
        }, timestamp)

    def _maybe_log_summary(self, timestamp: float, finger_detected: bool, perfusion_index: float,
                           pi_valid: bool, ratio_r: float, spo2: int, bpm: int,
                           global_sqi: float, confidence: ConfidenceLevel) -> None:
        if self._last_log_time is not None and timestamp - self._last_log_time < 1000.0:
            return
        self._last_log_time = timestamp
        if not logger.isEnabledFor(logging.DEBUG):
            return
        summary = {
            'frame': self._state.frames_processed,
            'finger': finger_detected,
            'red_ac': self.red_ac,
            'red_dc': self.red_dc,
            'green_ac': self.green_ac,
            'green_dc': self.green_dc,
            'perfusion_index': perfusion_index,
            'ratio_r': ratio_r,
            'spo2': spo2,
            'bpm': bpm,
            'global_sqi': global_sqi,
            'confidence': confidence.value,
        }
        logger.debug(
            f"Frame #{self._state.frames_processed} | finger={finger_detected} "
            f"(streak {self.finger_detector.state.consecutive_frames}) | "
            f"R AC={self.red_ac:.3f} DC={self.red_dc:.1f} | "
            f"G AC={self.green_ac:.3f} DC={self.green_dc:.1f} | "
            f"PI={perfusion_index:.2f}% {'ok' if pi_valid else 'out of range'} | "
            f"R={ratio_r:.3f} SpO2={spo2}% | BPM={bpm} | SQI={global_sqi:.0f} ({confidence.value})",
            extra={'ppg': summary},
        )

    # ==================== ACCESSORS ====================

    @property
    def state(self) -> PipelineState:
        s = self._state
        return PipelineState(
            is_calibrating=s.is_calibrating,
            calibration_progress=s.calibration_progress,
            is_processing=s.is_processing,
            frames_processed=s.frames_processed,
            last_bpm=s.last_bpm,
            last_spo2=s.last_spo2,
            last_confidence=s.last_confidence,
        )

    @property
    def calibration(self) -> RGBCalibration:
        return self.calibrator.calibration

    @property
    def finger_detected(self) -> bool:
        return self.finger_detector.detected

    @property
    def rr_intervals(self) -> List[float]:
        return self.peak_detector.rr_intervals

    @property
    def filtered_signal(self) -> List[float]:
        return list(self._filtered)

    def get_rgb_stats(self) -> Dict[str, float]:
        """Current AC/DC statistics; the perfusion index here is green-based."""
        return {
            'red_ac': self.red_ac,
            'red_dc': self.red_dc,
            'green_ac': self.green_ac,
            'green_dc': self.green_dc,
            'ratio_r': calculate_ratio_r(self.red_ac, self.red_dc, self.green_ac, self.green_dc),
            'perfusion_index': (self.green_ac / self.green_dc) * 100.0 if self.green_dc > 0 else 0.0,
        }
