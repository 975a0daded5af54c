"""Tests for ffmpeg command construction, progress parsing and the runner."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from reelcast.models.errors import RenderingError
from reelcast.models.pipeline import EffectIntensity, EffectName, Platform, SubtitleEntry, SubtitleStyle
from reelcast.rendering.ffmpeg_builder import FFmpegCommandBuilder, escape_drawtext
from reelcast.rendering.progress import FFmpegProgressMonitor
from reelcast.rendering.runner import FFmpegRunner


class TestFFmpegCommandBuilder:
    @pytest.fixture
    def builder(self, settings):
        return FFmpegCommandBuilder(settings)

    def test_effects_chain_filters(self, builder):
        cmd = builder.build_effects_command(
            "/in.mp4", "/out.mp4", [EffectName.CAMERA_SHAKE, EffectName.FILM_GRAIN], EffectIntensity.HEAVY
        )
        vf = cmd[cmd.index("-vf") + 1]
        assert vf.startswith("crop=in_w-10:in_h-10")
        assert "scale=1080:1920" in vf
        assert "noise=alls=15:allf=t+u" in vf
        assert "-af" not in cmd
        assert cmd[-1] == "/out.mp4"

    def test_intensity_scales_filters(self, builder):
        light = builder.effect_filters(EffectName.FILM_GRAIN, EffectIntensity.LIGHT)
        heavy = builder.effect_filters(EffectName.FILM_GRAIN, EffectIntensity.HEAVY)
        assert light == ["noise=alls=4:allf=t+u"]
        assert heavy == ["noise=alls=15:allf=t+u"]

    def test_phone_quality_adds_audio_band_pass(self, builder):
        cmd = builder.build_effects_command("/in.mp4", "/out.mp4", [EffectName.PHONE_QUALITY])
        af = cmd[cmd.index("-af") + 1]
        assert af == "highpass=f=160,lowpass=f=6800"

    def test_selfie_mode_mirrors(self, builder):
        assert builder.effect_filters(EffectName.SELFIE_MODE, EffectIntensity.LIGHT)[0] == "hflip"

    def test_no_effects_is_a_plain_reencode(self, builder):
        cmd = builder.build_effects_command("/in.mp4", "/out.mp4", [])
        assert "-vf" not in cmd
        assert cmd[cmd.index("-crf") + 1] == "23"

    def test_trim_window(self, builder):
        cmd = builder.build_trim_command("/in.mp4", "/out.mp4", start_time=1.5, end_time=4.0)
        assert cmd[cmd.index("-ss") + 1] == "1.500"
        assert cmd[cmd.index("-t") + 1] == "2.500"

    def test_trim_open_end(self, builder):
        assert "-t" not in builder.build_trim_command("/in.mp4", "/out.mp4", start_time=2.0)

    def test_subtitle_filter_windows(self, builder):
        entries = [
            SubtitleEntry(start_time=0, end_time=2, text="Try it"),
            SubtitleEntry(start_time=1.8, end_time=4, text="Glow: 100%"),
        ]
        vf = builder.build_subtitle_filter(entries, SubtitleStyle(font_size=28))
        parts = vf.split(",drawtext=")
        assert len(parts) == 2
        assert "enable='between(t,0.000,2.000)'" in parts[0]
        assert "fontsize=28" in parts[0]
        assert "Glow\\: 100\\%" in parts[1]
        assert "y=h-text_h-30" in parts[1]

    def test_subtitle_position_top(self, builder):
        entry = SubtitleEntry(start_time=0, end_time=1, text="hi")
        vf = builder.build_subtitle_filter([entry], SubtitleStyle(position="top", margin_v=50))
        assert "y=50" in vf

    def test_escape_drawtext(self):
        assert escape_drawtext("it's 5:00\nnow") == "it’s 5\\:00 now"

    @pytest.mark.parametrize(
        "platform,fps,bitrate",
        [(Platform.TIKTOK, 30, "4M"), (Platform.YOUTUBE_SHORTS, 60, "5M"), (Platform.TWITTER, 30, "2.5M")],
    )
    def test_platform_presets(self, builder, platform, fps, bitrate):
        cmd = builder.build_platform_command("/in.mp4", "/out.mp4", platform)
        assert f"fps={fps}" in cmd[cmd.index("-vf") + 1]
        assert cmd[cmd.index("-b:v") + 1] == bitrate
        assert "+faststart" in cmd

    def test_compress(self, builder):
        cmd = builder.build_compress_command("/in.mp4", "/out.mp4", crf=30)
        assert cmd[cmd.index("-crf") + 1] == "30"

    def test_thumbnail(self, builder):
        cmd = builder.build_thumbnail_command("/in.mp4", "/out.jpg", time_seconds=2)
        assert cmd[cmd.index("-ss") + 1] == "2.000"
        assert cmd[cmd.index("-frames:v") + 1] == "1"


class TestFFmpegProgressMonitor:
    def test_parse_time(self):
        values = []
        monitor = FFmpegProgressMonitor(10.0, callback=values.append)
        progress = monitor.parse_line("frame= 120 fps= 30 size= 256kB time=00:00:05.00 bitrate= 419.4kbits/s")
        assert progress == 50
        assert values == [50]

    def test_parse_no_time(self):
        assert FFmpegProgressMonitor(10.0).parse_line("Stream mapping:") is None

    def test_reports_only_increases(self):
        values = []
        monitor = FFmpegProgressMonitor(10.0, callback=values.append)
        for line in ("time=00:00:02.00", "time=00:00:02.00", "time=00:00:01.00", "time=00:00:08.00"):
            monitor.parse_line(line)
        assert values == [20, 80]

    def test_caps_at_hundred(self):
        monitor = FFmpegProgressMonitor(10.0)
        monitor.parse_line("time=00:01:00.00")
        assert monitor.progress == 100

    def test_unknown_duration(self):
        monitor = FFmpegProgressMonitor(0.0)
        monitor.parse_line("time=00:00:05.00")
        assert monitor.progress == 0


def fake_process(lines, returncode=0):
    process = MagicMock()
    process.stderr = iter(lines)
    process.returncode = returncode
    return process


class TestFFmpegRunner:
    def test_run_streams_progress(self, tmp_dir):
        output = tmp_dir / "out" / "result.mp4"
        values = []

        def popen(cmd, **kwargs):
            output.write_bytes(b"video")
            return fake_process(["time=00:00:05.00\n"])

        with patch("reelcast.rendering.runner.subprocess.Popen", side_effect=popen):
            result = FFmpegRunner().run(["ffmpeg", "-i", "x"], output, 10.0, values.append)

        assert result == output
        assert values == [50, 100]

    def test_nonzero_exit(self, tmp_dir):
        process = fake_process(["Invalid data found when processing input\n"], returncode=1)
        with patch("reelcast.rendering.runner.subprocess.Popen", return_value=process):
            with pytest.raises(RenderingError, match="code 1") as exc_info:
                FFmpegRunner().run(["ffmpeg"], tmp_dir / "out.mp4")
        assert "Invalid data" in exc_info.value.details["stderr"]

    def test_failing_progress_callback_kills_ffmpeg(self, tmp_dir):
        process = fake_process(["time=00:00:05.00\n", "time=00:00:06.00\n"])

        def report(progress):
            raise RuntimeError("database is locked")

        with patch("reelcast.rendering.runner.subprocess.Popen", return_value=process):
            with pytest.raises(RuntimeError, match="locked"):
                FFmpegRunner().run(["ffmpeg"], tmp_dir / "out.mp4", 10.0, report)
        process.kill.assert_called_once_with()
        process.wait.assert_called_once_with()

    def test_missing_output(self, tmp_dir):
        with patch("reelcast.rendering.runner.subprocess.Popen", return_value=fake_process([])):
            with pytest.raises(RenderingError, match="did not produce"):
                FFmpegRunner().run(["ffmpeg"], tmp_dir / "out.mp4")

    def test_ffmpeg_not_installed(self, tmp_dir):
        with patch("reelcast.rendering.runner.subprocess.Popen", side_effect=FileNotFoundError):
            with pytest.raises(RenderingError, match="not found"):
                FFmpegRunner().run(["ffmpeg"], tmp_dir / "out.mp4")

    def test_probe(self, tmp_dir):
        probe = {
            "format": {"duration": "12.5", "size": "2048"},
            "streams": [
                {"codec_type": "audio", "codec_name": "aac"},
                {"codec_type": "video", "codec_name": "h264", "width": 1080, "height": 1920},
            ],
        }
        completed = subprocess.CompletedProcess([], 0, stdout=json.dumps(probe), stderr="")
        with patch("reelcast.rendering.runner.subprocess.run", return_value=completed):
            metadata = FFmpegRunner().probe(tmp_dir / "v.mp4")
        assert metadata.duration == 12.5
        assert metadata.file_size == 2048
        assert (metadata.width, metadata.height, metadata.codec) == (1080, 1920, "h264")

    def test_probe_failure(self, tmp_dir):
        completed = subprocess.CompletedProcess([], 1, stdout="", stderr="moov atom not found")
        with patch("reelcast.rendering.runner.subprocess.run", return_value=completed):
            with pytest.raises(RenderingError, match="could not read"):
                FFmpegRunner().probe(tmp_dir / "v.mp4")
