"""
Offline frame sources.

Turns recorded material into the stream of :class:`ColorSample` that a
live frame source would deliver: a video of a fingertip over the lens
(decoded with OpenCV, one centre-ROI colour average per frame) or a CSV
of pre-averaged ``r,g,b[,t]`` rows.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Generator, List, Tuple

import cv2
import numpy as np

from ppg_vitals.session import ColorSample

logger = logging.getLogger(__name__)


def mean_rgb(frame: np.ndarray) -> Tuple[float, float, float]:
    """
    Average a BGR frame into an ``(r, g, b)`` triple.

    Parameters
    ----------
    frame:
        BGR image array (H × W × 3, uint8).
    """
    b_mean = float(np.mean(frame[:, :, 0]))
    g_mean = float(np.mean(frame[:, :, 1]))
    r_mean = float(np.mean(frame[:, :, 2]))
    return r_mean, g_mean, b_mean


def centre_roi(frame: np.ndarray, fraction: float) -> np.ndarray:
    """Return the centred sub-frame covering *fraction* of each dimension."""
    h, w = frame.shape[:2]
    roi_h = max(1, int(h * fraction))
    roi_w = max(1, int(w * fraction))
    y0 = (h - roi_h) // 2
    x0 = (w - roi_w) // 2
    return frame[y0:y0 + roi_h, x0:x0 + roi_w]


class VideoFileSource:
    """
    Replays a recorded fingertip video as colour samples.

    Parameters
    ----------
    path:
        Video file readable by OpenCV.
    roi_fraction:
        Size of the centred region that is averaged, as a fraction of the
        frame width/height (default 0.5).
    fallback_fps:
        Frame rate used for timestamps when the container does not report
        one.
    """

    def __init__(
        self,
        path: "str | Path",
        roi_fraction: float = 0.5,
        fallback_fps: float = 30.0,
    ) -> None:
        if not 0 < roi_fraction <= 1:
            raise ValueError(f"roi_fraction must be in (0, 1], got {roi_fraction}")
        self.path = Path(path)
        self.roi_fraction = roi_fraction
        self.fallback_fps = fallback_fps
        self.fps = fallback_fps

        self._cap: "cv2.VideoCapture | None" = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open the video file."""
        cap = cv2.VideoCapture(str(self.path))
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video file {self.path}")
        reported = cap.get(cv2.CAP_PROP_FPS)
        self.fps = float(reported) if reported and reported > 0 else self.fallback_fps
        self._cap = cap
        logger.info("Video opened – path=%s fps=%.2f", self.path, self.fps)

    def close(self) -> None:
        """Release the video file."""
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Video closed.")

    # Context-manager support
    def __enter__(self) -> "VideoFileSource":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Sample acquisition
    # ------------------------------------------------------------------

    def samples(self) -> Generator[ColorSample, None, None]:
        """
        Yield one :class:`ColorSample` per decoded frame until the video ends.

        Usage::

            with VideoFileSource("finger.mp4") as src:
                for sample in src.samples():
                    session.on_sample(sample.r, sample.g, sample.b, sample.t)
        """
        if self._cap is None:
            raise RuntimeError("Video is not open.  Call open() first.")

        index = 0
        while self._cap is not None:
            ok, frame = self._cap.read()
            if not ok:
                break
            r, g, b = mean_rgb(centre_roi(frame, self.roi_fraction))
            yield ColorSample(r, g, b, index / self.fps)
            index += 1
        logger.info("Video exhausted after %d frames.", index)


def read_csv_samples(path: "str | Path", sampling_rate: float = 30.0) -> List[ColorSample]:
    """
    Load ``r,g,b[,t]`` rows from *path*.

    A non-numeric first non-empty row is treated as a header.  Rows without a
    timestamp are stamped ``row_index / sampling_rate``.  Raises
    :class:`ValueError` on a malformed row.
    """
    samples: List[ColorSample] = []
    seen_row = False
    with open(path, newline="") as fh:
        for lineno, row in enumerate(csv.reader(fh), start=1):
            fields = [f.strip() for f in row if f.strip()]
            if not fields:
                continue
            first_row = not seen_row
            seen_row = True
            try:
                values = [float(f) for f in fields]
            except ValueError:
                if first_row:
                    continue
                raise ValueError(f"{path}:{lineno}: non-numeric value in {row!r}") from None
            if len(values) not in (3, 4):
                raise ValueError(f"{path}:{lineno}: expected r,g,b[,t], got {len(values)} fields")
            t = values[3] if len(values) == 4 else len(samples) / sampling_rate
            samples.append(ColorSample(values[0], values[1], values[2], t))
    return samples
