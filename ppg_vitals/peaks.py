"""
Adaptive peak detector for conditioned PPG traces.

A sample is a peak candidate when it exceeds ``mean + (1.5 + k)·std``
(``k = min(1, std / 20)``, so noisier traces need a higher crest) and is
strictly greater than its two neighbours on each side.  Candidates are
refined to sub-sample precision with a three-point parabolic fit and
accepted in detection order, skipping any that fall closer than the
minimum physiological distance to the previously accepted peak.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Sequence

import numpy as np

logger = logging.getLogger(__name__)

MIN_SAMPLES = 10

# 220 BPM at 30 fps is one beat every ~8.2 frames
DEFAULT_MIN_DISTANCE = 8


class Peak(NamedTuple):
    """A refined peak: fractional sample position and interpolated height."""

    index: float
    amplitude: float


class PeakDetector:
    """
    Parameters
    ----------
    min_distance:
        Minimum spacing between accepted peaks, in samples.
    """

    def __init__(self, min_distance: int = DEFAULT_MIN_DISTANCE) -> None:
        self.min_distance = min_distance

    def detect(self, trace: Sequence[float]) -> List[Peak]:
        """Return refined peaks of *trace* in ascending order (empty if < 10 samples)."""
        y = np.asarray(trace, dtype=np.float64)
        n = y.size
        if n < MIN_SAMPLES:
            return []

        mu = float(y.mean())
        sigma = float(y.std())
        noise_factor = min(1.0, sigma / 20.0)
        threshold = mu + (1.5 + noise_factor) * sigma

        centre = y[2:n - 2]
        candidate = (
            (centre > threshold)
            & (centre > y[1:n - 3])
            & (centre > y[0:n - 4])
            & (centre > y[3:n - 1])
            & (centre > y[4:n])
        )

        peaks: List[Peak] = []
        for i in np.flatnonzero(candidate) + 2:
            peak = refine_peak(y, int(i))
            # Spacing is measured between refined positions, not integer indices
            if peaks and peak.index - peaks[-1].index < self.min_distance:
                logger.debug("Peak at %.2f too close to %.2f – dropped.", peak.index, peaks[-1].index)
                continue
            peaks.append(peak)
        return peaks

    def positions(self, trace: Sequence[float]) -> np.ndarray:
        """Convenience wrapper returning only the refined peak positions."""
        return np.array([p.index for p in self.detect(trace)], dtype=np.float64)


def refine_peak(y: np.ndarray, i: int) -> Peak:
    """
    Parabolic interpolation through ``y[i-1], y[i], y[i+1]``.

    The vertex offset is ``(y1 - y3) / (2·(y1 - 2·y2 + y3))``.  If the fit
    is degenerate or the offset is not within one sample, the integer
    position is kept.
    """
    y1, y2, y3 = float(y[i - 1]), float(y[i]), float(y[i + 1])
    denom = 2.0 * (y1 - 2.0 * y2 + y3)
    if denom == 0.0:
        return Peak(float(i), y2)
    offset = (y1 - y3) / denom
    if abs(offset) >= 1.0:
        return Peak(float(i), y2)
    return Peak(i + offset, y2 - 0.25 * (y1 - y3) * offset)
