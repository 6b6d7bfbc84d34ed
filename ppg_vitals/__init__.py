"""
PPG Vitals – heart rate and SpO2 from fingertip colour averages.

Place your finger over the camera lens; the frame source averages each
frame into one (R, G, B) sample and this package turns the stream of
samples into a Kalman-smoothed BPM, a ratio-of-ratios SpO2 estimate and a
0 – 1 signal-quality score.
"""

from ppg_vitals.config import PipelineConfig, Sensitivity
from ppg_vitals.session import ColorSample, MeasurementResult, PipelineSession, TickResult

__version__ = "0.1.0"
__author__ = "ppg_vitals"

__all__ = [
    "ColorSample",
    "MeasurementResult",
    "PipelineConfig",
    "PipelineSession",
    "Sensitivity",
    "TickResult",
]
