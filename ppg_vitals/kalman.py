"""
Scalar Kalman filter over BPM.

The state is a single heart-rate estimate with its error covariance.  A
constant process noise ``Q`` models natural heart-rate variability; the
measurement noise is ``R = 100 - confidence`` with confidence expressed
in percent, so well-formed signals pull the estimate harder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ppg_vitals.rate import round_half_up

logger = logging.getLogger(__name__)


@dataclass
class KalmanState:
    estimate: float = 75.0
    error_covariance: float = 100.0


class KalmanSmoother:
    """
    Parameters
    ----------
    initial_estimate:
        BPM the filter starts from on every session (default 75).
    initial_covariance:
        Starting error covariance (default 100).
    process_noise:
        ``Q``, added to the covariance at each predict step (default 1.0).
    """

    def __init__(
        self,
        initial_estimate: float = 75.0,
        initial_covariance: float = 100.0,
        process_noise: float = 1.0,
    ) -> None:
        self.initial_estimate = initial_estimate
        self.initial_covariance = initial_covariance
        self.process_noise = process_noise
        self.state = KalmanState(initial_estimate, initial_covariance)

    def update(self, measurement: float, confidence: float) -> int:
        """
        Fuse one BPM *measurement* taken with *confidence* (0 – 100 %) and
        return the rounded posterior estimate.
        """
        confidence = min(100.0, max(0.0, confidence))
        measurement_noise = 100.0 - confidence

        predicted = self.state.estimate
        covariance = self.state.error_covariance + self.process_noise

        total = covariance + measurement_noise
        gain = covariance / total if total > 0 else 1.0
        self.state.estimate = predicted + gain * (measurement - predicted)
        self.state.error_covariance = (1.0 - gain) * covariance

        logger.debug(
            "Kalman: z=%.1f R=%.1f K=%.3f -> x=%.2f P=%.3f",
            measurement, measurement_noise, gain,
            self.state.estimate, self.state.error_covariance,
        )
        return round_half_up(self.state.estimate)

    @property
    def estimate(self) -> float:
        return self.state.estimate

    @property
    def error_covariance(self) -> float:
        return self.state.error_covariance

    def reset(self) -> None:
        """Return to the initial state."""
        self.state = KalmanState(self.initial_estimate, self.initial_covariance)
