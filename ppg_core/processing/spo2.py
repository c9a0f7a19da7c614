"""AC/DC estimation, ratio-of-ratios and the empirical SpO2 mapping."""
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from ..data.settings import SpO2Settings


def compute_ac_dc(window: Sequence[float]) -> Tuple[float, float]:
    """
    Estimate pulsatile (AC) and baseline (DC) components of a channel window

    AC fuses two amplitude estimates: RMS * sqrt(2) and half the 5th-95th
    percentile spread.

    Args:
        window: Linear channel values

    Returns:
        (ac, dc); (0, 0) for an empty window
    """
    x = np.asarray(window, dtype=np.float64)
    n = x.size
    if n == 0:
        return 0.0, 0.0

    dc = float(np.mean(x))
    rms = float(np.sqrt(np.mean((x - dc) ** 2)))

    ordered = np.sort(x)
    p5 = ordered[int(np.floor(n * 0.05))]
    p95 = ordered[min(n - 1, int(np.floor(n * 0.95)))]
    peak_to_peak = float(p95 - p5)

    ac = (rms * math.sqrt(2.0) + peak_to_peak * 0.5) / 2.0
    return ac, dc


def calculate_ratio_r(red_ac: float, red_dc: float, green_ac: float, green_dc: float) -> float:
    """Ratio of ratios (AC_red/DC_red) / (AC_green/DC_green); 0 when undefined."""
    if red_dc == 0 or green_dc == 0 or green_ac == 0:
        return 0.0
    return (red_ac / red_dc) / (green_ac / green_dc)


def estimate_spo2(ratio_r: float, perfusion_index: float,
                  settings: Optional[SpO2Settings] = None) -> int:
    """
    Map the ratio of ratios to an SpO2 percentage

    Args:
        ratio_r: Ratio of ratios
        perfusion_index: Perfusion index in percent
        settings: Calibration curve and plausibility limits

    Returns:
        SpO2 in percent, or 0 when the ratio or the result is implausible
    """
    s = settings or SpO2Settings()
    if ratio_r < s.min_ratio or ratio_r > s.max_ratio:
        return 0

    spo2 = s.intercept - s.slope * (ratio_r - s.reference_ratio)
    if perfusion_index < s.low_pi_threshold:
        spo2 += s.low_pi_bonus
    elif perfusion_index > s.high_pi_threshold:
        spo2 -= s.high_pi_penalty

    if spo2 < s.plausible_min or spo2 > s.plausible_max:
        return 0

    spo2 = min(s.clamp_max, max(s.clamp_min, spo2))
    # Round half up
    return int(math.floor(spo2 + 0.5))
