"""Finger presence detection with a consecutive-frame debounce and a stability check."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

import numpy as np

from ..data.settings import FingerDetectionSettings

logger = logging.getLogger(__name__)


@dataclass
class FingerDetectionState:
    """Finger detection state."""
    detected: bool = False
    consecutive_frames: int = 0
    stability_buffer: Deque[float] = field(default_factory=deque)
    variance: float = 0.0
    is_stable: bool = True
    rg_ratio: float = 0.0

    def reset(self) -> None:
        self.detected = False
        self.consecutive_frames = 0
        self.stability_buffer.clear()
        self.variance = 0.0
        self.is_stable = True
        self.rg_ratio = 0.0


class FingerDetector:
    """
    Decide whether a fingertip covers the lens using raw channel averages

    A frame qualifies when red is bright, the red/green ratio is in the
    tissue range and neither channel is saturated. Detection needs a streak
    of qualifying frames whose red values are also stable; any
    non-qualifying frame restarts the streak.
    """

    def __init__(self, settings: Optional[FingerDetectionSettings] = None):
        self.settings = settings or FingerDetectionSettings()
        self.state = FingerDetectionState(
            stability_buffer=deque(maxlen=self.settings.stability_window)
        )

    def qualifies(self, red: float, green: float) -> bool:
        """Instantaneous (single frame) finger criteria."""
        s = self.settings
        rg_ratio = red / green if green > 0 else 0.0
        self.state.rg_ratio = rg_ratio
        return (
            red > s.min_red
            and s.min_rg_ratio < rg_ratio < s.max_rg_ratio
            and red < s.saturation_level
            and green < s.saturation_level
        )

    def update(self, red: float, green: float) -> bool:
        """
        Feed one frame's raw red/green averages

        Returns:
            bool: True when a finger is detected after debouncing
        """
        s = self.settings
        st = self.state

        if self.qualifies(red, green):
            st.consecutive_frames += 1
            st.stability_buffer.append(float(red))
        else:
            st.consecutive_frames = 0
            st.stability_buffer.clear()

        st.is_stable = True
        st.variance = 0.0
        if len(st.stability_buffer) >= s.min_stability_samples:
            st.variance = float(np.var(np.asarray(st.stability_buffer, dtype=np.float64)))
            st.is_stable = st.variance < s.max_variance

        detected = st.consecutive_frames >= s.required_frames and st.is_stable
        if detected != st.detected:
            logger.info(f"Finger {'detected' if detected else 'lost'} "
                        f"(R={red:.0f} G={green:.0f} R/G={st.rg_ratio:.2f} var={st.variance:.1f})")
        st.detected = detected
        return detected

    @property
    def detected(self) -> bool:
        return self.state.detected

    def reset(self) -> None:
        self.state.reset()
