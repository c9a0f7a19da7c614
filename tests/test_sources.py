"""
Tests for synthetic and replay frame sources
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ppg_core.sources.replay_source import ReplayFrameSource, write_recording
from ppg_core.sources.synthetic_source import SyntheticFingerSource


def _collect(source, max_frames=None):
    frames = []
    source.set_frame_callback(lambda _name, frame: frames.append(frame))
    count = source.run_blocking(max_frames)
    return count, frames


# ==================== SYNTHETIC ====================

def test_synthetic_duration_and_timestamps():
    source = SyntheticFingerSource({'duration_s': 2, 'start_time_ms': 1000.0, 'width': 8, 'height': 8})
    count, frames = _collect(source)

    assert count == 60
    assert source.exhausted
    assert not source.is_running
    assert frames[0].timestamp == pytest.approx(1000.0)
    assert frames[1].timestamp - frames[0].timestamp == pytest.approx(1000.0 / 30)
    assert frames[0].pixels.shape == (8, 8, 4)


def test_synthetic_max_frames():
    source = SyntheticFingerSource({'width': 4, 'height': 4})
    count, frames = _collect(source, max_frames=10)
    assert count == 10
    assert [f.index for f in frames] == list(range(10))


def test_synthetic_is_reproducible_with_seed():
    config = {'duration_s': 1, 'noise_std': 0.5, 'seed': 3, 'start_time_ms': 0.0, 'width': 4, 'height': 4}
    _, first = _collect(SyntheticFingerSource(config))
    _, second = _collect(SyntheticFingerSource(config))
    np.testing.assert_array_equal(first[-1].pixels, second[-1].pixels)


def test_synthetic_finger_placement():
    source = SyntheticFingerSource({'finger_on_after_s': 1.0})
    assert source.channel_values(0.5) == (40.0, 40.0, 40.0)
    red, green, _ = source.channel_values(2.0)
    assert red > 150 and green > 80


def test_synthetic_threaded_run():
    source = SyntheticFingerSource({'duration_s': 1, 'realtime': False, 'width': 4, 'height': 4})
    assert source.start()
    assert source.wait(timeout=5.0)
    source.stop()

    assert source.frames_read == 30
    assert source.get_status() == 'exhausted'
    assert source.get_latest_frame().index == 29


def test_invalid_sample_rate():
    with pytest.raises(ValueError):
        SyntheticFingerSource({'sample_rate': 0})


# ==================== REPLAY ====================

def test_replay_round_trip(tmp_path):
    path = tmp_path / "session.csv"
    samples = [(i * 33.3, 180.0 + i, 90.0, 60.0) for i in range(20)]
    assert write_recording(path, samples) == 20

    count, frames = _collect(ReplayFrameSource({'path': str(path)}))
    assert count == 20
    assert frames[5].rgb == pytest.approx((185.0, 90.0, 60.0))
    assert frames[5].timestamp == pytest.approx(5 * 33.3)
    assert frames[0].pixels is None


def test_replay_skips_malformed_rows(tmp_path):
    path = tmp_path / "broken.csv"
    path.write_text(
        "timestamp_ms,red,green,blue\n"
        "0,180,90,60\n"
        "33,abc,90,60\n"
        "66,181,91\n"
        "100,182,92,62\n"
    )
    count, frames = _collect(ReplayFrameSource({'path': str(path)}))
    assert count == 2
    assert frames[1].rgb == pytest.approx((182.0, 92.0, 62.0))


def test_replay_missing_columns(tmp_path):
    path = tmp_path / "wrong.csv"
    path.write_text("time,r,g,b\n0,1,2,3\n")
    source = ReplayFrameSource({'path': str(path)})
    assert source.initialize() is False


def test_replay_missing_file(tmp_path):
    source = ReplayFrameSource({'path': str(tmp_path / "absent.csv")})
    assert source.run_blocking() == 0
    assert source.start() is False


def test_replay_loop_keeps_time_increasing(tmp_path):
    path = tmp_path / "loop.csv"
    write_recording(path, [(i * 100.0, 180.0, 90.0, 60.0) for i in range(5)])

    count, frames = _collect(ReplayFrameSource({'path': str(path), 'loop': True}), max_frames=12)
    assert count == 12
    timestamps = [f.timestamp for f in frames]
    assert all(b > a for a, b in zip(timestamps, timestamps[1:]))


def test_source_info():
    source = SyntheticFingerSource({'bpm': 60})
    info = source.get_source_info()
    assert info['name'] == 'synthetic'
    assert info['sample_rate'] == 30.0
    assert info['has_data'] is False
    assert source.get_status() == 'stopped'
