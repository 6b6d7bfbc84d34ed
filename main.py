#!/usr/bin/env python3
"""
PPG Vitals – replay entry point.

Feeds recorded fingertip samples through a measurement session and
prints heart rate, SpO2 and confidence once per second of samples.

Usage
-----
    python main.py (--video PATH | --csv PATH) [OPTIONS]

Options
-------
    --video PATH         Recorded fingertip video (any format OpenCV reads)
    --csv PATH           CSV of r,g,b[,t] colour averages
    --sensitivity STR    low | medium | high (default: medium)
    --fps FLOAT          Nominal sampling rate (default: 30)
    --window FLOAT       Measurement window in seconds (default: 15)
    --calibration FLOAT  Calibration period in seconds (default: 5)
    --age INT            Age used for the heart-rate zone (default: 30)
    --verbose            Debug logging

Exit status
-----------
    0  measurement produced a heart rate
    1  bad input or options
    2  no usable heart rate
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable

from ppg_vitals.config import PipelineConfig, Sensitivity
from ppg_vitals.session import ColorSample, MeasurementResult, PipelineSession
from ppg_vitals.sources import VideoFileSource, read_csv_samples

logger = logging.getLogger("ppg_vitals")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Heart rate and SpO2 from fingertip colour samples (PPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--video", type=Path, default=None,
                        help="Recorded fingertip video")
    source.add_argument("--csv", type=Path, default=None,
                        help="CSV of r,g,b[,t] colour averages")
    parser.add_argument("--sensitivity", default="medium",
                        choices=[s.value for s in Sensitivity],
                        help="Smoothing sensitivity")
    parser.add_argument("--fps", type=float, default=30.0,
                        help="Nominal sampling rate in Hz")
    parser.add_argument("--window", type=float, default=15.0,
                        help="Measurement window in seconds")
    parser.add_argument("--calibration", type=float, default=5.0,
                        help="Calibration period in seconds")
    parser.add_argument("--age", type=int, default=30,
                        help="Age used to classify the heart-rate zone")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, sampling_rate_hz: float | None = None) -> PipelineConfig:
    """Map CLI options onto a config; *sampling_rate_hz* overrides ``--fps``."""
    return PipelineConfig(
        sensitivity=Sensitivity.parse(args.sensitivity),
        sampling_rate_hz=sampling_rate_hz if sampling_rate_hz is not None else args.fps,
        measurement_window_s=args.window,
        calibration_s=args.calibration,
    ).validate()


# ---------------------------------------------------------------------------
# Replay loop
# ---------------------------------------------------------------------------

def replay(session: PipelineSession, samples: Iterable[ColorSample]) -> MeasurementResult:
    """Feed *samples* until the measurement window is full, then finish."""
    log_interval = max(1, int(round(session.config.sampling_rate_hz)))
    for idx, sample in enumerate(samples):
        tick = session.on_sample(sample.r, sample.g, sample.b, sample.t)

        if idx % log_interval == 0:
            pct = session.progress() * 100
            if tick.bpm is not None:
                print(f"[{sample.t:6.1f}s {pct:3.0f}%] BPM={tick.bpm}  "
                      f"SpO2={tick.spo2 if tick.spo2 is not None else '--'}%  "
                      f"conf={tick.confidence:.2f}  finger={tick.presence}")
            elif tick.calibrating:
                print(f"[{sample.t:6.1f}s {pct:3.0f}%] Calibrating…  finger={tick.presence}")
            else:
                print(f"[{sample.t:6.1f}s {pct:3.0f}%] Waiting for signal…  finger={tick.presence}")

        if session.progress() >= 1.0:
            break
    return session.finish()


def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        if args.video is not None:
            with VideoFileSource(args.video, fallback_fps=args.fps) as src:
                # Peak intervals are in frames, so the rate must be the video's
                if src.fps != args.fps:
                    logger.warning(
                        "Video reports %.2f fps; using it instead of --fps %.2f.",
                        src.fps, args.fps,
                    )
                session = PipelineSession(build_config(args, src.fps), age=args.age)
                result = replay(session, src.samples())
        else:
            config = build_config(args)
            session = PipelineSession(config, age=args.age)
            result = replay(session, read_csv_samples(args.csv, config.sampling_rate_hz))
    except (OSError, RuntimeError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 1

    if not result.ok:
        print(f"Measurement failed: {result.reason}.  Reposition your finger and retry.")
        return 2

    print(f"Heart rate: {result.bpm} BPM ({result.zone})")
    print(f"SpO2:       {result.spo2 if result.spo2 is not None else '--'}%")
    print(f"Confidence: {result.confidence * 100:.0f}%")
    return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
