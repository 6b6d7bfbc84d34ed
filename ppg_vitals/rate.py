"""
Heart-rate estimation from refined peak positions.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


class RateEstimator:
    """
    Converts the mean peak-to-peak interval into BPM.

    Parameters
    ----------
    sampling_rate:
        Sample rate of the trace the peaks were found in (Hz).
    bpm_low, bpm_high:
        Physiological band; candidates outside it are silently dropped.
    """

    def __init__(
        self,
        sampling_rate: float = 30.0,
        bpm_low: int = 40,
        bpm_high: int = 220,
    ) -> None:
        self.sampling_rate = sampling_rate
        self.bpm_low = bpm_low
        self.bpm_high = bpm_high

    def estimate(self, peak_positions: Sequence[float]) -> Optional[int]:
        """
        Return the candidate BPM, or *None* when there are fewer than two
        peaks or the result falls outside ``[bpm_low, bpm_high]``.
        """
        positions = np.asarray(peak_positions, dtype=np.float64)
        if positions.size < 2:
            return None

        mean_interval = float(np.mean(np.diff(positions)))
        if mean_interval <= 0:
            return None

        bpm = round_half_up(60.0 * self.sampling_rate / mean_interval)
        if not self.bpm_low <= bpm <= self.bpm_high:
            logger.debug("Rejected out-of-band candidate: %d BPM", bpm)
            return None
        return bpm
