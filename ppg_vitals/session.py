"""
Per-session PPG pipeline.

One :class:`PipelineSession` owns the rolling colour buffers and the
Kalman state for a single measurement.  The frame source calls
:meth:`PipelineSession.on_sample` once per tick with the frame's average
(R, G, B); every stage runs synchronously inside that call:

    presence gate → buffers → conditioning → peaks → rate → Kalman
                                          ↘ quality ↗
    red / green / blue buffers → SpO2

Only the Kalman state carries over between ticks; the conditioned trace
and its peaks are recomputed from the buffers every time.  Sessions are
not thread-safe; the caller must serialise ticks.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

import numpy as np

from ppg_vitals.conditioning import SignalConditioner
from ppg_vitals.config import PipelineConfig
from ppg_vitals.finger_detector import FingerDetector
from ppg_vitals.kalman import KalmanSmoother
from ppg_vitals.oxygen import OxygenEstimator
from ppg_vitals.peaks import PeakDetector
from ppg_vitals.quality import QualityScorer
from ppg_vitals.rate import RateEstimator, round_half_up
from ppg_vitals.zones import heart_rate_zone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorSample:
    """Average colour of one frame; *t* is in seconds."""

    r: float
    g: float
    b: float
    t: float


@dataclass(frozen=True)
class TickResult:
    """
    Outputs after one tick.

    ``bpm`` and ``spo2`` are the most recent estimates and stay *None*
    until the pipeline has produced one.  ``confidence`` is 0 – 1.
    """

    presence: bool
    bpm: Optional[int]
    spo2: Optional[int]
    confidence: float
    calibrating: bool = False
    bpm_updated: bool = False

    @property
    def confidence_percent(self) -> int:
        return round_half_up(self.confidence * 100)


@dataclass(frozen=True)
class MeasurementResult:
    """Terminal outcome of a measurement; ``status`` is "ok" or "failed"."""

    status: str
    bpm: Optional[int]
    spo2: Optional[int]
    confidence: float
    zone: str
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class PipelineSession:
    """
    Stateful PPG pipeline for one measurement.

    Parameters
    ----------
    config:
        Pipeline configuration; defaults to :class:`PipelineConfig()`.
    age:
        Used only to classify the final heart rate into a training zone.
    """

    def __init__(self, config: PipelineConfig | None = None, age: int = 30) -> None:
        self.config = (config if config is not None else PipelineConfig()).validate()
        self.age = age

        cfg = self.config
        self.detector = FingerDetector(red_blue_ratio=cfg.red_blue_ratio)
        self.conditioner = SignalConditioner(window=cfg.smoothing_window)
        self.peak_detector = PeakDetector(min_distance=cfg.min_peak_distance)
        self.scorer = QualityScorer(self.peak_detector)
        self.rate = RateEstimator(
            sampling_rate=cfg.sampling_rate_hz,
            bpm_low=cfg.bpm_low,
            bpm_high=cfg.bpm_high,
        )
        self.oxygen = OxygenEstimator(
            conditioner=self.conditioner,
            scorer=self.scorer,
            window=cfg.oxygen_window,
            default=cfg.spo2_default,
        )
        self.kalman = KalmanSmoother(
            initial_estimate=cfg.kalman_initial_estimate,
            initial_covariance=cfg.kalman_initial_covariance,
            process_noise=cfg.kalman_process_noise,
        )

        maxlen = cfg.buffer_size
        self._history: Deque[ColorSample] = deque(maxlen=maxlen)
        self._red: Deque[float] = deque(maxlen=maxlen)
        self._green: Deque[float] = deque(maxlen=maxlen)
        self._blue: Deque[float] = deque(maxlen=maxlen)
        self._clear_state()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on_sample(self, r: float, g: float, b: float, t: float | None = None) -> TickResult:
        """
        Feed one colour average and return the updated outputs.

        When *t* is omitted the sample is timestamped from the tick count
        and the nominal sampling rate.
        """
        if t is None:
            t = self._ticks / self.config.sampling_rate_hz
        self._ticks += 1
        sample = ColorSample(float(r), float(g), float(b), float(t))
        self._history.append(sample)
        if self._first_t is None:
            self._first_t = sample.t
        self._last_t = sample.t

        if not self.detector.is_finger(sample.r, sample.g, sample.b):
            return self._result(presence=False, calibrating=self._is_calibrating(sample.t))

        if self._finger_since is None:
            self._finger_since = sample.t
            logger.info("Finger detected at t=%.2fs – calibrating.", sample.t)
        self._red.append(sample.r)
        self._green.append(sample.g)
        self._blue.append(sample.b)

        calibrating = self._is_calibrating(sample.t)
        updated = False

        trace = self.conditioner.condition(self._green)
        if trace.size:
            positions = self.peak_detector.positions(trace)
            self._confidence = self.scorer.score(trace, positions)
            candidate = self.rate.estimate(positions)
            if candidate is not None and not calibrating:
                self._bpm = self.kalman.update(candidate, self._confidence * 100.0)
                self._updates += 1
                updated = True

        spo2 = self.oxygen.estimate(self._red, self._green, self._blue)
        if spo2 is not None:
            self._spo2 = spo2

        return self._result(presence=True, calibrating=calibrating, bpm_updated=updated)

    def reset_session(self) -> None:
        """Discard all buffers and return the Kalman filter to its initial state."""
        self._history.clear()
        self._red.clear()
        self._green.clear()
        self._blue.clear()
        self.kalman.reset()
        self._clear_state()
        logger.info("Session reset.")

    def finish(self) -> MeasurementResult:
        """
        End the measurement, return its outcome and reset the session.

        The result is "failed" when no heart rate was ever accepted; the
        caller decides how to present that (e.g. prompt a retry).
        """
        if self._updates == 0:
            reason = "no finger detected" if self._finger_since is None else "no usable heart rate"
            result = MeasurementResult(
                status="failed",
                bpm=None,
                spo2=self._spo2,
                confidence=self._confidence,
                zone=heart_rate_zone(None),
                reason=reason,
            )
            logger.info("Measurement failed: %s.", reason)
        else:
            result = MeasurementResult(
                status="ok",
                bpm=self._bpm,
                spo2=self._spo2,
                confidence=self._confidence,
                zone=heart_rate_zone(self._bpm, age=self.age),
            )
            logger.info(
                "Measurement finished: %s BPM, SpO2 %s%%, confidence %.0f%%.",
                result.bpm, result.spo2, result.confidence * 100,
            )
        self.reset_session()
        return result

    def progress(self, t: float | None = None) -> float:
        """Fraction (0 – 1) of the measurement window elapsed at *t* (default: last sample)."""
        if self._first_t is None:
            return 0.0
        now = self._last_t if t is None else t
        elapsed = max(0.0, now - self._first_t)
        return min(1.0, elapsed / self.config.measurement_window_s)

    def conditioned_trace(self) -> np.ndarray:
        """
        Return the current conditioned green trace (for plotting).
        Returns an empty array if there is insufficient data.
        """
        return self.conditioner.condition(self._green)

    @property
    def buffer_fill_ratio(self) -> float:
        """How full the rolling buffers are (0 – 1)."""
        return len(self._green) / self._green.maxlen

    @property
    def history(self) -> tuple[ColorSample, ...]:
        """Every recorded sample, finger present or not."""
        return tuple(self._history)

    @property
    def last_bpm(self) -> Optional[int]:
        return self._bpm

    @property
    def last_spo2(self) -> Optional[int]:
        return self._spo2

    @property
    def last_confidence(self) -> float:
        return self._confidence

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _clear_state(self) -> None:
        self._bpm: Optional[int] = None
        self._spo2: Optional[int] = None
        self._confidence: float = 0.0
        self._ticks = 0
        self._updates = 0
        self._first_t: Optional[float] = None
        self._last_t: Optional[float] = None
        self._finger_since: Optional[float] = None

    def _is_calibrating(self, t: float) -> bool:
        if self._finger_since is None:
            return False
        return t - self._finger_since < self.config.calibration_s

    def _result(self, presence: bool, calibrating: bool, bpm_updated: bool = False) -> TickResult:
        return TickResult(
            presence=presence,
            bpm=self._bpm,
            spo2=self._spo2,
            confidence=self._confidence,
            calibrating=calibrating,
            bpm_updated=bpm_updated,
        )
