"""
Pipeline configuration.

All tunables of the PPG pipeline live in one :class:`PipelineConfig`
dataclass so the command-line tool and the presentation layer configure a
session the same way.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class Sensitivity(Enum):
    """User-facing sensitivity setting; selects the smoothing window."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def window(self) -> int:
        """Smoothing window length in samples (low=7, medium=5, high=3)."""
        return _SMOOTHING_WINDOWS[self]

    @classmethod
    def parse(cls, value: "str | Sensitivity") -> "Sensitivity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown sensitivity {value!r}; expected one of low, medium, high"
            ) from None


_SMOOTHING_WINDOWS = {
    Sensitivity.LOW: 7,
    Sensitivity.MEDIUM: 5,
    Sensitivity.HIGH: 3,
}


@dataclass
class PipelineConfig:
    """
    Tunables for one measurement session.

    Parameters
    ----------
    sensitivity:
        Smoothing sensitivity (see :class:`Sensitivity`).
    sampling_rate_hz:
        Nominal rate at which the frame source delivers samples.
    measurement_window_s:
        Length of a measurement.  Only used for :meth:`progress` reporting;
        the caller decides when to stop feeding samples.
    calibration_s:
        Warm-up period after the first finger-present sample during which
        no BPM is pushed into the Kalman filter.  0 disables it.
    buffer_seconds:
        Length of the rolling per-channel buffers.  The buffers always hold
        at least 450 samples (15 s at 30 Hz).
    red_blue_ratio:
        Minimum red:blue ratio for the finger-presence heuristic.
    min_peak_distance:
        Minimum distance between accepted peaks, in samples.
    bpm_low, bpm_high:
        Physiological band for accepted BPM candidates.
    """

    sensitivity: Sensitivity = Sensitivity.MEDIUM
    sampling_rate_hz: float = 30.0
    measurement_window_s: float = 15.0
    calibration_s: float = 5.0
    buffer_seconds: float = 15.0
    red_blue_ratio: float = 1.3
    min_peak_distance: int = 8
    bpm_low: int = 40
    bpm_high: int = 220
    kalman_initial_estimate: float = 75.0
    kalman_initial_covariance: float = 100.0
    kalman_process_noise: float = 1.0
    oxygen_window: int = 100
    spo2_default: int = 97

    def __post_init__(self) -> None:
        self.sensitivity = Sensitivity.parse(self.sensitivity)

    @property
    def smoothing_window(self) -> int:
        return self.sensitivity.window

    @property
    def buffer_size(self) -> int:
        """Capacity of each rolling channel buffer, in samples."""
        return max(450, math.ceil(self.sampling_rate_hz * self.buffer_seconds))

    def validate(self) -> "PipelineConfig":
        """Raise :class:`ValueError` if any setting is out of range."""
        if self.sampling_rate_hz <= 0:
            raise ValueError(f"sampling_rate_hz must be positive, got {self.sampling_rate_hz}")
        if self.measurement_window_s <= 0:
            raise ValueError(
                f"measurement_window_s must be positive, got {self.measurement_window_s}"
            )
        if self.buffer_seconds <= 0:
            raise ValueError(f"buffer_seconds must be positive, got {self.buffer_seconds}")
        if self.calibration_s < 0:
            raise ValueError(f"calibration_s must not be negative, got {self.calibration_s}")
        if not 0 < self.bpm_low < self.bpm_high:
            raise ValueError(f"Invalid BPM band [{self.bpm_low}, {self.bpm_high}]")
        if self.min_peak_distance < 1:
            raise ValueError("min_peak_distance must be at least 1 sample")
        if self.oxygen_window < 30:
            raise ValueError("oxygen_window must cover at least 30 samples")
        if self.kalman_process_noise < 0 or self.kalman_initial_covariance < 0:
            raise ValueError("Kalman covariances must not be negative")
        return self
