"""
Finger-on-lens detector.

When a finger covers the camera (ideally with the flash on), light passes
through blood-perfused tissue before it reaches the sensor, so the frame
average becomes:
  - Red-dominant (haemoglobin absorbs green and blue far more than red).
  - Green brighter than blue.
  - Red well above blue (red:blue ratio > 1.3).

This module provides that colour-ratio heuristic, used to gate the PPG
pipeline so it does not accumulate samples while the lens is uncovered.
The check is deliberately static: no learning, no hysteresis and no
recovery from misclassification.  It is brittle under unusual lighting
and skin tones, and a rejected sample is simply skipped.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class FingerDetector:
    """
    Heuristic detector: is the camera lens covered by a finger?

    Parameters
    ----------
    red_blue_ratio:
        Minimum ratio ``mean_red / mean_blue`` required to confirm skin
        tissue.  Default: 1.3.
    """

    def __init__(self, red_blue_ratio: float = 1.3) -> None:
        self.red_blue_ratio = red_blue_ratio

    def is_finger(self, r: float, g: float, b: float) -> bool:
        """
        Return *True* if the colour average ``(r, g, b)`` looks like a
        finger covering the lens.
        """
        red_dominant = r > g and r > b
        green_secondary = g > b
        # b == 0 with r > 0 is an infinitely large ratio
        if b > 0:
            ratio_ok = r / b > self.red_blue_ratio
        else:
            ratio_ok = r > 0

        present = red_dominant and green_secondary and ratio_ok
        if not present:
            logger.debug("No finger: r=%.1f g=%.1f b=%.1f", r, g, b)
        return present
