"""
End-to-end tests for the PPG pipeline orchestrator
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ppg_core.data.models import ConfidenceLevel, PipelineEventType
from ppg_core.data.settings import PipelineConfig
from ppg_core.pipeline.ppg_pipeline import PPGPipeline, extract_roi


FS = 30.0


def _frame(red, green, blue=60.0, width=64, height=48):
    frame = np.empty((height, width, 4), dtype=np.float32)
    frame[..., 0] = red
    frame[..., 1] = green
    frame[..., 2] = blue
    frame[..., 3] = 255.0
    return frame


def _run_pulse(pipeline, n_frames, bpm=60.0):
    """Feed a fingertip pulse at ``bpm`` and return the processed frames."""
    freq = bpm / 60.0
    frames = []
    for i in range(n_frames):
        t = i / FS
        pulse = np.sin(2 * np.pi * freq * t)
        frames.append(pipeline.process_frame(_frame(180 + 2 * pulse, 90 + pulse),
                                             timestamp=i * 1000.0 / FS))
    return frames


@pytest.fixture
def pipeline():
    ppg = PPGPipeline(PipelineConfig(sample_rate=FS))
    ppg.start()
    yield ppg
    ppg.dispose()


def _record(pipeline, event_type):
    events = []
    pipeline.on(event_type, events.append)
    return events


# ==================== ROI ====================

def test_extract_roi_uniform_frame():
    assert extract_roi(_frame(120, 80, 40)) == pytest.approx((120.0, 80.0, 40.0))


def test_extract_roi_flat_buffer():
    flat = _frame(120, 80, 40, width=16, height=12).reshape(-1)
    rgb = extract_roi(flat, width=16, height=12, channels=4)
    assert rgb == pytest.approx((120.0, 80.0, 40.0))


def test_extract_roi_ignores_border():
    frame = _frame(200, 100, 50, width=100, height=100)
    frame[:5, :, :3] = 0
    frame[:, :5, :3] = 0
    assert extract_roi(frame, stride=1)[0] == pytest.approx(200.0)


def test_extract_roi_invalid_input():
    with pytest.raises(ValueError):
        extract_roi(np.zeros(100))
    with pytest.raises(ValueError):
        extract_roi(np.zeros((10, 10, 2)))


# ==================== LIFECYCLE ====================

def test_not_running_returns_none():
    ppg = PPGPipeline()
    assert ppg.process_frame(_frame(180, 90)) is None
    assert ppg.process_reading(180, 90, 60) is None


def test_start_and_stop(pipeline):
    pipeline.process_reading(180, 90, 60, timestamp=0)
    assert pipeline.state.is_processing
    assert pipeline.state.frames_processed == 1

    pipeline.stop()
    assert pipeline.process_reading(180, 90, 60, timestamp=33) is None
    assert pipeline.state.frames_processed == 1


# ==================== END TO END ====================

def test_finger_detected_and_instant_calibration(pipeline):
    calibration_events = _record(pipeline, PipelineEventType.CALIBRATION_COMPLETE)
    frames = _run_pulse(pipeline, 300)

    assert not frames[3].finger_detected
    assert frames[4].finger_detected
    assert len(calibration_events) == 1
    assert calibration_events[0].timestamp == pytest.approx(4 * 1000.0 / FS)

    cal = pipeline.calibration
    assert cal.is_calibrated
    assert cal.samples_collected == 1
    assert cal.offset_r == pytest.approx(0.025 * frames[4].calibrated.red / 0.975, rel=0.05)


def test_first_heart_rate_after_warm_up(pipeline):
    peak_events = _record(pipeline, PipelineEventType.PEAK_DETECTED)
    frames = _run_pulse(pipeline, 300, bpm=60.0)

    first_finger = next(i for i, f in enumerate(frames) if f.finger_detected)
    first_bpm = next(i for i, f in enumerate(frames) if f.smoothed_bpm > 0)
    first_peak = next(i for i, f in enumerate(frames) if f.is_peak)

    assert first_finger <= 5
    assert pipeline.calibration.is_calibrated
    # 45-sample detector warm-up after the finger debounce, then one RR interval
    assert first_peak < 80
    assert first_bpm <= 110
    assert abs(frames[-1].smoothed_bpm - 60) <= 6
    assert len(peak_events) >= 6


def test_heart_rate_converges(pipeline):
    peak_events = _record(pipeline, PipelineEventType.PEAK_DETECTED)
    frames = _run_pulse(pipeline, 600, bpm=60.0)
    last = frames[-1]

    assert last.finger_detected
    assert last.smoothed_bpm > 0
    assert abs(last.smoothed_bpm - 60) <= 6
    assert 900 <= np.median(last.rr_intervals) <= 1100
    assert len(peak_events) >= 10
    assert sum(f.is_peak for f in frames) == len(peak_events)


def test_vitals_and_quality(pipeline):
    frames = _run_pulse(pipeline, 600)
    last = frames[-1]

    assert 0.05 <= last.perfusion_index <= 20
    assert last.red_dc > 0 and last.green_dc > 0
    assert last.ratio_r == pytest.approx(1.0, abs=0.2)
    assert 90 <= last.spo2 <= 100
    assert last.confidence != ConfidenceLevel.INVALID
    assert last.hrv.sdnn >= 0
    assert pipeline.state.last_spo2 == last.spo2


def test_frame_to_dict_is_plain(pipeline):
    frame = _run_pulse(pipeline, 120)[-1]
    data = frame.to_dict()
    assert data['confidence'] in {level.value for level in ConfidenceLevel}
    assert isinstance(data['calibrated'], dict)
    assert isinstance(data['sqi'], dict)


def test_no_finger_reports_nothing(pipeline):
    peaks = _record(pipeline, PipelineEventType.PEAK_DETECTED)
    frames = [pipeline.process_frame(_frame(40, 40, 40), timestamp=i * 1000.0 / FS)
              for i in range(150)]

    assert not any(f.finger_detected for f in frames)
    assert peaks == []
    assert frames[-1].smoothed_bpm == 0
    assert frames[-1].instant_bpm == 0.0
    assert frames[-1].confidence == ConfidenceLevel.INVALID


# ==================== EVENTS ====================

def test_vitals_update_interval(pipeline):
    vitals = _record(pipeline, PipelineEventType.VITALS_UPDATE)
    _run_pulse(pipeline, 300)

    assert 8 <= len(vitals) <= 10
    assert set(vitals[0].data) == {'bpm', 'spo2', 'confidence', 'perfusion_index', 'global_sqi'}


def test_quality_change_emitted(pipeline):
    changes = _record(pipeline, PipelineEventType.QUALITY_CHANGE)
    _run_pulse(pipeline, 600)

    assert changes
    assert changes[0].data['previous'] == ConfidenceLevel.INVALID.value
    for event in changes:
        assert event.data['previous'] != event.data['current']


def test_listener_errors_do_not_stop_processing(pipeline):
    def broken(_event):
        raise RuntimeError("listener failure")

    pipeline.on('calibration_complete', broken)
    received = _record(pipeline, PipelineEventType.CALIBRATION_COMPLETE)
    frames = _run_pulse(pipeline, 10)

    assert all(f is not None for f in frames)
    assert len(received) == 1


def test_off_unsubscribes(pipeline):
    received = []
    handle = pipeline.on(PipelineEventType.CALIBRATION_COMPLETE, received.append)
    assert pipeline.off(PipelineEventType.CALIBRATION_COMPLETE, handle) is True
    assert pipeline.off(PipelineEventType.CALIBRATION_COMPLETE, handle) is False

    _run_pulse(pipeline, 10)
    assert received == []


def test_unknown_event_name_rejected(pipeline):
    with pytest.raises(ValueError):
        pipeline.on('heartbeat', lambda e: None)


# ==================== CALIBRATION ====================

def test_zero_light_calibration_pass(pipeline):
    started = _record(pipeline, PipelineEventType.CALIBRATION_START)
    completed = _record(pipeline, PipelineEventType.CALIBRATION_COMPLETE)

    pipeline.start_calibration()
    assert pipeline.state.is_calibrating
    assert len(started) == 1

    for i in range(30):
        pipeline.process_reading(20 + i % 3, 15 + i % 2, 10, timestamp=i * 33.0)

    state = pipeline.state
    assert not state.is_calibrating
    assert state.calibration_progress == 100
    assert len(completed) == 1
    assert pipeline.calibration.samples_collected == 30


def test_force_calibration(pipeline):
    completed = _record(pipeline, PipelineEventType.CALIBRATION_COMPLETE)

    pipeline.force_calibration()  # nothing buffered yet
    assert completed == []

    pipeline.process_reading(60, 40, 30, timestamp=0)
    pipeline.force_calibration()
    assert len(completed) == 1
    assert pipeline.calibration.is_calibrated


# ==================== RESET ====================

def test_reset_keeps_calibration_unless_full(pipeline):
    _run_pulse(pipeline, 120)
    assert pipeline.calibration.is_calibrated

    pipeline.reset()
    assert pipeline.calibration.is_calibrated
    assert pipeline.filtered_signal == []
    assert pipeline.rr_intervals == []
    assert not pipeline.finger_detected
    assert pipeline.state.is_processing

    pipeline.reset(full=True)
    assert not pipeline.calibration.is_calibrated


def test_reset_reproduces_results(pipeline):
    first = [f.filtered_value for f in _run_pulse(pipeline, 90)]
    pipeline.reset(full=True)
    second = [f.filtered_value for f in _run_pulse(pipeline, 90)]
    np.testing.assert_allclose(first, second)


def test_dispose_clears_listeners():
    ppg = PPGPipeline()
    received = _record(ppg, PipelineEventType.CALIBRATION_START)
    ppg.start()
    ppg.dispose()

    assert not ppg.state.is_processing
    ppg.start_calibration()
    assert received == []


def test_frame_callback_receives_frames():
    received = []
    ppg = PPGPipeline(on_frame_processed=received.append)
    ppg.start()
    _run_pulse(ppg, 5)
    assert len(received) == 5


def test_rgb_stats_keys(pipeline):
    _run_pulse(pipeline, 60)
    stats = pipeline.get_rgb_stats()
    assert set(stats) == {'red_ac', 'red_dc', 'green_ac', 'green_dc', 'ratio_r', 'perfusion_index'}
    assert stats['perfusion_index'] > 0
