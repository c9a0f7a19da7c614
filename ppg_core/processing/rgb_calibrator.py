"""Zero-light-offset and gamma calibration of averaged camera RGB channels."""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import List, Optional

import numpy as np

from ..data.models import CalibratedRGB, RGBCalibration
from ..data.settings import CalibrationSettings

logger = logging.getLogger(__name__)


class RGBCalibrator:
    """
    Estimate per-channel zero-light offset (ZLO) and gain, then linearise samples

    A calibration pass collects ``samples_required`` raw triples. The offset of
    each channel is its 5th percentile, the gain equalises channel ranges and a
    fixed display gamma is inverted to get linear intensities.
    """

    def __init__(self, settings: Optional[CalibrationSettings] = None) -> None:
        self.settings = settings or CalibrationSettings()
        self._calibration = RGBCalibration(gamma=self.settings.gamma)
        self._red: List[float] = []
        self._green: List[float] = []
        self._blue: List[float] = []

    # ==================== CALIBRATION PASS ====================

    def begin_calibration(self) -> None:
        """Start a new calibration pass, discarding collected samples."""
        self._red.clear()
        self._green.clear()
        self._blue.clear()
        self._calibration.is_calibrated = False
        self._calibration.samples_collected = 0
        logger.info(f"Calibration started ({self.settings.samples_required} samples)")

    def add_sample(self, red: float, green: float, blue: float) -> bool:
        """
        Add one raw triple to the calibration pass

        Returns:
            bool: True once calibration is complete
        """
        if self._calibration.is_calibrated:
            return True

        self._red.append(float(red))
        self._green.append(float(green))
        self._blue.append(float(blue))
        self._calibration.samples_collected = len(self._red)

        if len(self._red) >= self.settings.samples_required:
            self._complete_calibration()
            return True
        return False

    def _complete_calibration(self) -> None:
        sorted_r = np.sort(np.asarray(self._red, dtype=np.float64))
        sorted_g = np.sort(np.asarray(self._green, dtype=np.float64))
        sorted_b = np.sort(np.asarray(self._blue, dtype=np.float64))

        p_index = int(np.floor(sorted_r.size * self.settings.offset_percentile))
        offset_r = float(sorted_r[p_index])
        offset_g = float(sorted_g[p_index])
        offset_b = float(sorted_b[p_index])

        range_r = float(sorted_r[-1]) - offset_r
        range_g = float(sorted_g[-1]) - offset_g
        range_b = float(sorted_b[-1]) - offset_b
        range_all = max(range_r, range_g, range_b, 1.0)

        cal = self._calibration
        cal.offset_r, cal.offset_g, cal.offset_b = offset_r, offset_g, offset_b
        cal.gamma = self.settings.gamma
        cal.scale_r = range_all / max(range_r, 1.0)
        cal.scale_g = range_all / max(range_g, 1.0)
        cal.scale_b = range_all / max(range_b, 1.0)
        cal.is_calibrated = True
        cal.calibration_time = time.time() * 1000.0

        logger.info(
            f"Calibration complete: ZLO R={offset_r:.1f} G={offset_g:.1f} B={offset_b:.1f}, "
            f"gamma={cal.gamma:.2f}"
        )

    def force_calibrate_from_sample(self, red: float, green: float, blue: float) -> None:
        """Instant calibration from one sample taken with the finger in place."""
        fraction = self.settings.instant_offset_fraction
        cal = self._calibration
        cal.offset_r = max(0.0, float(red) * fraction)
        cal.offset_g = max(0.0, float(green) * fraction)
        cal.offset_b = max(0.0, float(blue) * fraction)
        cal.gamma = self.settings.gamma
        cal.scale_r = cal.scale_g = cal.scale_b = 1.0
        cal.is_calibrated = True
        cal.samples_collected = 1
        cal.calibration_time = time.time() * 1000.0

        logger.info(
            f"Instant calibration from R={red:.1f} G={green:.1f} B={blue:.1f} "
            f"(ZLO R={cal.offset_r:.2f})"
        )

    # ==================== APPLY ====================

    def apply(self, red: float, green: float, blue: float) -> CalibratedRGB:
        """
        Correct and linearise one raw triple

        Uncalibrated samples use the default offset with unit gain.
        """
        cal = self._calibration
        if cal.is_calibrated:
            offsets = (cal.offset_r, cal.offset_g, cal.offset_b)
            scales = (cal.scale_r, cal.scale_g, cal.scale_b)
            gamma = cal.gamma
        else:
            default = self.settings.default_offset
            offsets = (default, default, default)
            scales = (1.0, 1.0, 1.0)
            gamma = self.settings.gamma

        corrected = [max(0.0, float(v) - off) for v, off in zip((red, green, blue), offsets)]
        linear = [((c * s) / 255.0) ** gamma * 255.0 for c, s in zip(corrected, scales)]

        return CalibratedRGB(
            red=corrected[0],
            green=corrected[1],
            blue=corrected[2],
            linear_red=linear[0],
            linear_green=linear[1],
            linear_blue=linear[2],
        )

    # ==================== STATE ====================

    @property
    def calibration(self) -> RGBCalibration:
        return replace(self._calibration)

    @property
    def is_calibrated(self) -> bool:
        return self._calibration.is_calibrated

    @property
    def progress(self) -> int:
        """Calibration progress in percent."""
        if self._calibration.is_calibrated:
            return 100
        required = max(1, self.settings.samples_required)
        return min(100, int(round(len(self._red) / required * 100)))

    def reset(self) -> None:
        self._red.clear()
        self._green.clear()
        self._blue.clear()
        self._calibration = RGBCalibration(gamma=self.settings.gamma)
