"""
Unit tests for PipelineSession, PipelineConfig, the offline sources and
the replay CLI.
Run with:  pytest tests/
"""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from main import main
from ppg_vitals.config import PipelineConfig, Sensitivity
from ppg_vitals.session import ColorSample, PipelineSession, TickResult
from ppg_vitals.sources import VideoFileSource, centre_roi, mean_rgb, read_csv_samples


def _finger_samples(n: int, period: int = 25, first: int = 12, fps: float = 30.0):
    """Finger-on-lens colour averages with one-sample pulses every *period*."""
    samples = []
    for i in range(n):
        pulse = 1.0 if i % period == first else 0.0
        samples.append(ColorSample(180 + 10 * pulse, 100 + 20 * pulse, 60 + 5 * pulse, i / fps))
    return samples


def _feed(session: PipelineSession, samples):
    return [session.on_sample(s.r, s.g, s.b, s.t) for s in samples]


def _write_finger_video(path, n_frames: int, fps: float, period: int, first: int = 25) -> None:
    """MJPG clip of a reddish fingertip that brightens every *period* frames."""
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (64, 64))
    if not writer.isOpened():
        pytest.skip("OpenCV build cannot write MJPG video")
    base = np.zeros((64, 64, 3), dtype=np.uint8)
    base[:, :] = (60, 100, 180)          # BGR
    pulse = np.zeros((64, 64, 3), dtype=np.uint8)
    pulse[:, :] = (65, 120, 190)
    for i in range(n_frames):
        writer.write(pulse if i % period == first else base)
    writer.release()


# ---------------------------------------------------------------------------
# PipelineSession tests
# ---------------------------------------------------------------------------

class TestPipelineSession:

    def test_no_data_state(self):
        session = PipelineSession()
        assert session.last_bpm is None
        assert session.last_spo2 is None
        assert session.last_confidence == 0.0
        assert session.buffer_fill_ratio == 0.0
        assert session.conditioned_trace().size == 0
        assert session.progress() == 0.0

    def test_no_finger_produces_no_estimates(self):
        session = PipelineSession()
        for i in range(100):
            tick = session.on_sample(50, 60, 55, i / 30)
            assert tick.presence is False
            assert tick.bpm is None
            assert tick.spo2 is None
        assert session.buffer_fill_ratio == 0.0
        result = session.finish()
        assert result.ok is False
        assert result.reason == "no finger detected"

    def test_synthetic_pulse_train_detected(self):
        session = PipelineSession()
        ticks = _feed(session, _finger_samples(450))
        last = ticks[-1]
        assert last.presence is True
        assert last.bpm == 72
        assert 85 <= last.spo2 <= 100
        assert last.confidence > 0.9
        assert last.confidence_percent > 90

    def test_calibration_blocks_kalman_updates(self):
        session = PipelineSession()
        ticks = _feed(session, _finger_samples(300))
        # 5 s at 30 Hz
        assert all(t.calibrating for t in ticks[:150])
        assert not any(t.bpm_updated for t in ticks[:150])
        assert all(t.bpm is None for t in ticks[:150])
        assert not ticks[150].calibrating
        assert any(t.bpm_updated for t in ticks[150:])

    def test_calibration_can_be_disabled(self):
        session = PipelineSession(PipelineConfig(calibration_s=0.0))
        ticks = _feed(session, _finger_samples(150))
        assert any(t.bpm_updated for t in ticks)

    def test_out_of_band_rate_never_updates(self):
        # one pulse every 60 samples = 30 BPM
        session = PipelineSession(PipelineConfig(calibration_s=0.0))
        ticks = _feed(session, _finger_samples(450, period=60, first=20))
        assert all(t.bpm is None for t in ticks)
        assert session.kalman.estimate == 75.0
        assert session.kalman.error_covariance == 100.0
        result = session.finish()
        assert result.status == "failed"
        assert result.reason == "no usable heart rate"
        assert result.bpm is None

    def test_no_finger_samples_kept_in_history_only(self):
        session = PipelineSession()
        for _ in range(3):
            session.on_sample(50, 60, 55)
        session.on_sample(200, 120, 80)
        session.on_sample(200, 120, 80)
        assert len(session.history) == 5
        assert session.buffer_fill_ratio == pytest.approx(2 / 450)

    def test_default_timestamps_follow_sampling_rate(self):
        session = PipelineSession()
        for _ in range(226):
            session.on_sample(200, 120, 80)
        assert session.history[-1].t == pytest.approx(7.5)
        assert session.progress() == pytest.approx(0.5)

    def test_progress_clamped(self):
        session = PipelineSession()
        session.on_sample(200, 120, 80, 0.0)
        assert session.progress(30.0) == 1.0

    def test_reset_is_idempotent(self):
        samples = _finger_samples(300)

        fresh = PipelineSession(PipelineConfig(calibration_s=1.0))
        expected = [fresh.on_sample(s.r, s.g, s.b) for s in samples]

        reused = PipelineSession(PipelineConfig(calibration_s=1.0))
        _feed(reused, _finger_samples(200, period=20, first=3))
        reused.reset_session()
        assert reused.last_bpm is None
        assert reused.kalman.estimate == 75.0
        actual = [reused.on_sample(s.r, s.g, s.b) for s in samples]

        assert actual == expected

    def test_finish_reports_and_resets(self):
        session = PipelineSession(age=30)
        _feed(session, _finger_samples(450))
        result = session.finish()
        assert result.ok
        assert result.bpm == 72
        assert result.zone == "Rest"
        assert 85 <= result.spo2 <= 100
        assert session.last_bpm is None
        assert session.buffer_fill_ratio == 0.0

    def test_conditioned_trace_in_range(self):
        session = PipelineSession()
        _feed(session, _finger_samples(500))
        trace = session.conditioned_trace()
        assert trace.size == 450
        assert trace.min() >= 10.0
        assert trace.max() <= 90.0


# ---------------------------------------------------------------------------
# PipelineConfig tests
# ---------------------------------------------------------------------------

class TestTickResult:

    def test_confidence_percent_rounds_half_up(self):
        tick = TickResult(presence=True, bpm=None, spo2=None, confidence=0.125)
        assert tick.confidence_percent == 13


class TestPipelineConfig:

    def test_defaults(self):
        cfg = PipelineConfig()
        assert cfg.sensitivity is Sensitivity.MEDIUM
        assert cfg.smoothing_window == 5
        assert cfg.sampling_rate_hz == 30.0
        assert cfg.measurement_window_s == 15.0
        assert cfg.buffer_size == 450

    def test_sensitivity_from_string(self):
        assert PipelineConfig(sensitivity="high").smoothing_window == 3
        assert Sensitivity.parse("LOW") is Sensitivity.LOW
        with pytest.raises(ValueError):
            Sensitivity.parse("extreme")

    def test_buffer_grows_with_rate(self):
        assert PipelineConfig(sampling_rate_hz=60.0).buffer_size == 900

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            PipelineConfig(sampling_rate_hz=0).validate()
        with pytest.raises(ValueError):
            PipelineConfig(bpm_low=200, bpm_high=100).validate()
        with pytest.raises(ValueError):
            PipelineSession(PipelineConfig(measurement_window_s=-1))


# ---------------------------------------------------------------------------
# Source tests
# ---------------------------------------------------------------------------

class TestSources:

    def test_mean_rgb_reads_bgr(self):
        frame = np.zeros((8, 8, 3), dtype=np.uint8)
        frame[:, :, 0] = 10
        frame[:, :, 1] = 20
        frame[:, :, 2] = 30
        assert mean_rgb(frame) == (30.0, 20.0, 10.0)

    def test_centre_roi(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        roi = centre_roi(frame, 0.5)
        assert roi.shape == (240, 320, 3)

    def test_read_csv_with_header_and_timestamps(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("r,g,b,t\n200,120,80,0.0\n201,121,80,0.05\n")
        samples = read_csv_samples(path)
        assert samples == [ColorSample(200, 120, 80, 0.0), ColorSample(201, 121, 80, 0.05)]

    def test_read_csv_without_timestamps(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("200,120,80\n\n201,121,80\n")
        samples = read_csv_samples(path, sampling_rate=10.0)
        assert [s.t for s in samples] == [0.0, 0.1]

    def test_read_csv_malformed_row(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("200,120,80\n200,abc,80\n")
        with pytest.raises(ValueError):
            read_csv_samples(path)
        path.write_text("200,120\n")
        with pytest.raises(ValueError):
            read_csv_samples(path)

    def test_missing_video_raises(self, tmp_path):
        with pytest.raises(RuntimeError):
            VideoFileSource(tmp_path / "missing.mp4").open()

    def test_read_csv_header_after_blank_lines(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("\n\nr,g,b\n200,120,80\n")
        samples = read_csv_samples(path)
        assert samples == [ColorSample(200, 120, 80, 0.0)]

    def test_video_samples_use_container_fps(self, tmp_path):
        path = tmp_path / "finger.avi"
        _write_finger_video(path, n_frames=120, fps=60.0, period=50)
        with VideoFileSource(path, fallback_fps=30.0) as src:
            assert src.fps == pytest.approx(60.0)
            samples = list(src.samples())
        assert len(samples) == 120
        assert samples[1].t == pytest.approx(1 / 60)
        assert samples[0].r == pytest.approx(180, abs=4)
        assert samples[0].g == pytest.approx(100, abs=4)
        assert samples[0].b == pytest.approx(60, abs=4)
        assert samples[25].g > samples[0].g + 10

    def test_samples_requires_open(self, tmp_path):
        src = VideoFileSource(tmp_path / "missing.mp4")
        with pytest.raises(RuntimeError):
            next(src.samples())


# ---------------------------------------------------------------------------
# CLI tests
# ---------------------------------------------------------------------------

class TestCli:

    def _write_csv(self, path, samples):
        path.write_text("".join(f"{s.r},{s.g},{s.b}\n" for s in samples))

    def test_replay_csv(self, tmp_path, capsys):
        path = tmp_path / "finger.csv"
        self._write_csv(path, _finger_samples(450))
        assert main(["--csv", str(path)]) == 0
        out = capsys.readouterr().out
        assert "Heart rate: 72 BPM (Rest)" in out

    def test_replay_without_finger_fails(self, tmp_path, capsys):
        path = tmp_path / "open.csv"
        path.write_text("50,60,55\n" * 100)
        assert main(["--csv", str(path)]) == 2
        assert "no finger detected" in capsys.readouterr().out

    def test_replay_video_uses_video_frame_rate(self, tmp_path, capsys):
        # one pulse every 50 frames at 60 fps = 72 BPM
        path = tmp_path / "finger.avi"
        _write_finger_video(path, n_frames=600, fps=60.0, period=50)
        assert main(["--video", str(path), "--calibration", "0"]) == 0
        assert "Heart rate: 72 BPM (Rest)" in capsys.readouterr().out

    def test_bad_csv_exit_code(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("1,2\n")
        assert main(["--csv", str(path)]) == 1
