from __future__ import annotations

from pathlib import Path

import pytest

from mediavault.errors import DerivationError
from mediavault.ingest.tools import ToolError, ToolResult, run_tool
from mediavault.ingest.video_processor import VideoProcessor
from tests.conftest import FakeRunner


def test_probe_and_describe(settings, tmp_path: Path):
    processor = VideoProcessor(settings, runner=FakeRunner())
    raw = processor.probe(tmp_path / "clip.mp4")
    fields = processor.describe(raw)

    assert (fields.width, fields.height) == (3840, 2160)
    assert fields.is_hdr is True
    assert fields.hdr_format == "HDR10"
    assert fields.bit_depth == 10


def test_probe_rejects_malformed_json(settings, tmp_path: Path):
    def runner(command, *, timeout=None):
        return ToolResult(command=list(command), returncode=0, stdout="not json", stderr="")

    with pytest.raises(DerivationError):
        VideoProcessor(settings, runner=runner).probe(tmp_path / "clip.mp4")


def test_thumbnail_offset_is_clamped_into_short_clips(settings, tmp_path: Path):
    runner = FakeRunner()
    output = tmp_path / "thumb.jpg"

    size = VideoProcessor(settings, runner=runner).render_thumbnail(tmp_path / "clip.mp4", output, duration=0.5)

    assert size == (64, 36)
    assert runner.seek_times() == ["0.250"]
    assert output.exists()


def test_thumbnail_uses_configured_offset(settings, tmp_path: Path):
    runner = FakeRunner()
    VideoProcessor(settings, runner=runner).render_thumbnail(tmp_path / "clip.mp4", tmp_path / "t.jpg", duration=60.0)
    assert runner.seek_times() == ["1.000"]


def test_thumbnail_retries_from_first_frame(settings, tmp_path: Path):
    runner = FakeRunner(fail_seeks=True)
    output = tmp_path / "thumb.jpg"

    VideoProcessor(settings, runner=runner).render_thumbnail(tmp_path / "clip.mp4", output, duration=None)

    assert runner.seek_times() == ["1.000", "0.000"]
    assert output.exists()


def test_thumbnail_scale_filter_bounds_long_edge(settings, tmp_path: Path):
    runner = FakeRunner()
    VideoProcessor(settings, runner=runner).render_thumbnail(tmp_path / "clip.mp4", tmp_path / "t.jpg", duration=5.0)
    size = settings.thumbnail_size
    assert f"scale=w={size}:h={size}:force_original_aspect_ratio=decrease" in runner.calls[0]


def test_missing_output_is_a_derivation_error(settings, tmp_path: Path):
    def runner(command, *, timeout=None):
        return ToolResult(command=list(command), returncode=0, stdout="", stderr="")

    with pytest.raises(DerivationError):
        VideoProcessor(settings, runner=runner).render_thumbnail(tmp_path / "clip.mp4", tmp_path / "t.jpg", duration=0.0)


def test_run_tool_reports_missing_binary():
    with pytest.raises(ToolError):
        run_tool(["mediavault-no-such-binary", "-version"])


def test_real_ffmpeg_round_trip(settings, tmp_path: Path, generated_video_file: Path):
    processor = VideoProcessor(settings)
    fields = processor.describe(processor.probe(generated_video_file))
    assert (fields.width, fields.height) == (128, 72)
    assert fields.duration == pytest.approx(2.0, abs=0.1)
    assert fields.is_hdr is False

    output = tmp_path / "thumb.jpg"
    width, height = processor.render_thumbnail(generated_video_file, output, fields.duration)
    assert max(width, height) <= settings.thumbnail_size
    assert output.exists()
