"""
Signal-quality score for a conditioned trace.

``score = 0.7 · regularity + 0.3 · amplitude`` where regularity is
``1 - CV`` of the peak-to-peak intervals and amplitude is the trace span
over 50.  Both terms are clamped to [0, 1].  Traces with fewer than two
peaks score a fixed 0.2.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ppg_vitals.peaks import PeakDetector

LOW_QUALITY = 0.2
REGULARITY_WEIGHT = 0.7
AMPLITUDE_WEIGHT = 0.3
AMPLITUDE_SCALE = 50.0


class QualityScorer:
    def __init__(self, detector: Optional[PeakDetector] = None) -> None:
        self.detector = detector if detector is not None else PeakDetector()

    def score(
        self,
        trace: Sequence[float],
        positions: Optional[Sequence[float]] = None,
    ) -> float:
        """
        Return a 0 – 1 quality score for *trace*.

        Pass *positions* when the peaks of *trace* are already known to
        avoid detecting them twice.
        """
        y = np.asarray(trace, dtype=np.float64)
        if positions is None:
            positions = self.detector.positions(y)
        positions = np.asarray(positions, dtype=np.float64)
        if positions.size < 2:
            return LOW_QUALITY

        intervals = np.diff(positions)
        mean_interval = float(intervals.mean())
        cv = float(intervals.std()) / mean_interval if mean_interval > 0 else 1.0
        regularity = float(np.clip(1.0 - cv, 0.0, 1.0))

        amplitude = float(np.clip(np.ptp(y) / AMPLITUDE_SCALE, 0.0, 1.0))
        return REGULARITY_WEIGHT * regularity + AMPLITUDE_WEIGHT * amplitude
