"""
PPG signal conditioner.

Algorithm
---------
1. Smooth the raw channel with an inverse-square weighted moving average
   (weights ``1 / (1 + d²)`` over a symmetric window).  This approximates a
   Savitzky–Golay fit at O(n·window) cost with no matrix inversion.
2. Remove baseline wander: the local baseline at each sample is the mean
   of two side-lobes ``[i - w, i - w/2)`` and ``(i + w/2, i + w]`` that
   skip the pulse under the sample itself, with ``w = min(50, n / 4)``.
   The baseline is subtracted and the trace re-centred around 50.
3. Min–max rescale into [10, 90].  A flat trace becomes a constant 50.

References
----------
- Savitzky A., Golay M.J.E., "Smoothing and differentiation of data by
  simplified least squares procedures." Anal. Chem., 1964.
- Allen J., "Photoplethysmography and its application in clinical
  physiological measurement." Physiol. Meas., 2007.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.ndimage import correlate1d

logger = logging.getLogger(__name__)

MIN_SAMPLES = 20
TRACE_LOW = 10.0
TRACE_HIGH = 90.0
TRACE_CENTRE = 50.0
MAX_BASELINE_WINDOW = 50
MIN_BASELINE_WINDOW = 3

# Relative spread below which a trace counts as flat
_FLAT_TOLERANCE = 1e-9


class SignalConditioner:
    """
    Turns a raw colour-channel buffer into a 10 – 90 scaled PPG trace.

    Parameters
    ----------
    window:
        Smoothing window length in samples (odd; 7 / 5 / 3 for low / medium
        / high sensitivity).
    """

    def __init__(self, window: int = 5) -> None:
        if window < 1:
            raise ValueError(f"Smoothing window must be positive, got {window}")
        self.window = window
        half = window // 2
        offsets = np.arange(-half, half + 1, dtype=np.float64)
        self._kernel = 1.0 / (1.0 + offsets ** 2)

    def condition(self, samples: Sequence[float]) -> np.ndarray:
        """
        Return the conditioned trace for *samples* (same length).

        Returns an empty array when fewer than 20 samples are available.
        """
        signal = np.asarray(samples, dtype=np.float64)
        if signal.size < MIN_SAMPLES:
            return np.array([])

        smoothed = self.smooth(signal)
        detrended = remove_baseline(smoothed)
        return normalize(detrended)

    def smooth(self, signal: np.ndarray) -> np.ndarray:
        """Inverse-square weighted moving average; the window shrinks at the edges."""
        weighted = correlate1d(signal, self._kernel, mode="constant", cval=0.0)
        weights = correlate1d(np.ones_like(signal), self._kernel, mode="constant", cval=0.0)
        return weighted / weights


def remove_baseline(signal: np.ndarray) -> np.ndarray:
    """
    Subtract the side-lobe baseline and re-centre around 50.

    Interior samples use their own baseline; the first and last ``w``
    samples reuse the baseline of the nearest interior sample.  Signals
    too short for a 3-sample window are returned unchanged.
    """
    n = signal.size
    w = min(MAX_BASELINE_WINDOW, n // 4)
    if w < MIN_BASELINE_WINDOW:
        return signal.copy()

    inner = w // 2
    lobe = w - inner
    csum = np.concatenate(([0.0], np.cumsum(signal)))
    idx = np.arange(w, n - w)
    left = csum[idx - inner] - csum[idx - w]
    right = csum[idx + w + 1] - csum[idx + inner + 1]
    baseline = (left + right) / (2 * lobe)

    out = np.empty_like(signal)
    out[w:n - w] = signal[w:n - w] - baseline + TRACE_CENTRE
    out[:w] = signal[:w] - baseline[0] + TRACE_CENTRE
    out[n - w:] = signal[n - w:] - baseline[-1] + TRACE_CENTRE
    return out


def normalize(signal: np.ndarray) -> np.ndarray:
    """Min–max rescale into [10, 90]; a flat signal maps to all 50s."""
    lo = float(signal.min())
    hi = float(signal.max())
    span = hi - lo
    if span <= _FLAT_TOLERANCE * max(1.0, abs(hi), abs(lo)):
        logger.debug("Flat signal (span=%.3g) – emitting constant trace.", span)
        return np.full_like(signal, TRACE_CENTRE)
    scaled = TRACE_LOW + (TRACE_HIGH - TRACE_LOW) * (signal - lo) / span
    return np.clip(scaled, TRACE_LOW, TRACE_HIGH)
