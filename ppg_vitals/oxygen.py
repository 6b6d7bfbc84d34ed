"""
SpO2 estimation from three colour channels.

Algorithm
---------
1. Condition the most recent 100 samples of the red, green and blue
   channels independently.
2. Pulsatility index per channel: ``(max - min) / mean`` of the
   conditioned trace.
3. Ratios of ratios: ``r1 = PI_red / PI_green``, ``r2 = PI_red / PI_blue``.
4. Empirical linear models ``110 - 25·r1`` and ``104 - 17·r2``.
5. Weighted average by channel-pair quality
   (``w1 = q_red·q_green``, ``w2 = q_red·q_blue``), default 97 when no
   pair is usable, clamped to [85, 100].

Notes
-----
- The coefficients are fixed and have never been calibrated against a
  reference oximeter.
- True pulse oximetry uses red (~660 nm) and infrared (~940 nm) light;
  visible green/blue stand in for IR here.
- Results are indicative only, not clinical-grade.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from ppg_vitals.conditioning import SignalConditioner
from ppg_vitals.quality import QualityScorer
from ppg_vitals.rate import round_half_up

logger = logging.getLogger(__name__)

MIN_SAMPLES = 30
SPO2_LOW = 85
SPO2_HIGH = 100


def pulsatility_index(trace: Sequence[float]) -> float:
    """``(max - min) / mean`` of *trace*; 0 for an empty or zero-mean trace."""
    y = np.asarray(trace, dtype=np.float64)
    if y.size == 0:
        return 0.0
    mean = float(y.mean())
    if mean == 0:
        return 0.0
    return float(np.ptp(y)) / mean


class OxygenEstimator:
    """
    Parameters
    ----------
    conditioner:
        Conditioner applied to each channel (shares the session's
        smoothing window).
    scorer:
        Quality scorer used for the channel weights.
    window:
        Number of most recent samples used per channel (default 100).
    default:
        Value reported when neither channel pair is usable (default 97).
    """

    def __init__(
        self,
        conditioner: Optional[SignalConditioner] = None,
        scorer: Optional[QualityScorer] = None,
        window: int = 100,
        default: int = 97,
    ) -> None:
        self.conditioner = conditioner if conditioner is not None else SignalConditioner()
        self.scorer = scorer if scorer is not None else QualityScorer()
        self.window = window
        self.default = default

    def estimate(
        self,
        red: Sequence[float],
        green: Sequence[float],
        blue: Sequence[float],
    ) -> Optional[int]:
        """
        Return SpO2 in percent (85 – 100), or *None* when any channel holds
        fewer than 30 samples.
        """
        if min(len(red), len(green), len(blue)) < MIN_SAMPLES:
            return None

        traces = [
            self.conditioner.condition(np.asarray(channel, dtype=np.float64)[-self.window:])
            for channel in (red, green, blue)
        ]
        pi_red, pi_green, pi_blue = (pulsatility_index(t) for t in traces)
        q_red, q_green, q_blue = (self.scorer.score(t) for t in traces)

        estimates = []
        weights = []
        # A ratio is only meaningful when both channels pulse
        if pi_red > 0 and pi_green > 0:
            estimates.append(110.0 - 25.0 * (pi_red / pi_green))
            weights.append(q_red * q_green)
        if pi_red > 0 and pi_blue > 0:
            estimates.append(104.0 - 17.0 * (pi_red / pi_blue))
            weights.append(q_red * q_blue)

        total = sum(weights)
        if total == 0:
            logger.debug("No usable channel pair – reporting default SpO2.")
            spo2 = float(self.default)
        else:
            spo2 = sum(e * w for e, w in zip(estimates, weights)) / total

        return min(SPO2_HIGH, max(SPO2_LOW, round_half_up(spo2)))
