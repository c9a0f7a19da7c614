"""Synthetic fingertip-on-lens frame generator for demos and tests."""
from __future__ import annotations

import math
import time
from typing import Any, Dict, Optional

import numpy as np

from .base_source import BaseFrameSource, SourceFrame


class SyntheticFingerSource(BaseFrameSource):
    """
    Generate RGBA frames of a finger pressed on a flash-lit lens

    Each channel is a constant baseline modulated by a cardiac sine wave
    (plus an optional dicrotic harmonic and gaussian noise). Before
    ``finger_on_after_s`` the frames show a dark, uncovered lens.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = dict(config or {})
        super().__init__(config.get('name', 'synthetic'), config)

        self.width = int(config.get('width', 64))
        self.height = int(config.get('height', 48))
        self.bpm = float(config.get('bpm', 72.0))
        self.baseline = (
            float(config.get('baseline_red', 180.0)),
            float(config.get('baseline_green', 90.0)),
            float(config.get('baseline_blue', 60.0)),
        )
        self.amplitude = (
            float(config.get('amplitude_red', 2.0)),
            float(config.get('amplitude_green', 1.0)),
            float(config.get('amplitude_blue', 0.5)),
        )
        self.dicrotic_ratio = float(config.get('dicrotic_ratio', 0.0))
        self.noise_std = float(config.get('noise_std', 0.0))
        self.finger_on_after_s = float(config.get('finger_on_after_s', 0.0))
        self.duration_s = config.get('duration_s')
        self.start_time_ms = config.get('start_time_ms')
        self.seed = config.get('seed')

        self._rng: Optional[np.random.Generator] = None
        self._index = 0
        self._t0_ms = 0.0

    def initialize(self) -> bool:
        self._rng = np.random.default_rng(self.seed)
        self._index = 0
        self._t0_ms = float(self.start_time_ms) if self.start_time_ms is not None else time.time() * 1000.0
        self.logger.info(f"Synthetic finger @ {self.bpm:.0f} BPM, {self.width}x{self.height}, "
                         f"noise={self.noise_std}")
        return True

    def cleanup(self):
        self._rng = None

    def channel_values(self, t: float) -> tuple:
        """Averaged R, G, B at time ``t`` seconds (noise-free)."""
        if t < self.finger_on_after_s:
            return 40.0, 40.0, 40.0

        phase = 2.0 * math.pi * self.bpm / 60.0 * t
        pulse = math.sin(phase) + self.dicrotic_ratio * math.sin(2.0 * phase)
        return tuple(base + amp * pulse for base, amp in zip(self.baseline, self.amplitude))

    def read_frame(self) -> Optional[SourceFrame]:
        t = self._index / self.sample_rate
        if self.duration_s is not None and t >= float(self.duration_s):
            self.exhausted = True
            return None

        red, green, blue = self.channel_values(t)
        if self.noise_std > 0 and self._rng is not None:
            red, green, blue = (v + float(self._rng.normal(0.0, self.noise_std)) for v in (red, green, blue))

        pixels = np.empty((self.height, self.width, 4), dtype=np.float32)
        pixels[..., 0] = red
        pixels[..., 1] = green
        pixels[..., 2] = blue
        pixels[..., 3] = 255.0

        frame = SourceFrame(
            timestamp=self._t0_ms + self._index * 1000.0 / self.sample_rate,
            index=self._index,
            pixels=pixels,
        )
        self._index += 1
        return frame
