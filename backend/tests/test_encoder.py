"""Tests for the FFmpeg encoder command and session."""

from pathlib import Path

import pytest

from photostory.exceptions import EncoderError
from photostory.render.encoder import EncoderConfig, FFmpegEncoder, build_encoder_command


def _arg(cmd: list[str], flag: str) -> str:
    return cmd[cmd.index(flag) + 1]


class TestBuildEncoderCommand:
    @pytest.mark.parametrize("quality,crf", [("draft", "28"), ("standard", "23"), ("high", "18")])
    def test_quality_sets_crf(self, quality, crf):
        cmd = build_encoder_command(EncoderConfig(width=1280, height=720, fps=30, quality=quality), "out.mp4")

        assert _arg(cmd, "-crf") == crf

    def test_raw_frames_from_stdin(self):
        cmd = build_encoder_command(EncoderConfig(width=1280, height=720, fps=24), "out.mp4")

        assert _arg(cmd, "-f") == "rawvideo"
        assert _arg(cmd, "-s") == "1280x720"
        assert _arg(cmd, "-r") == "24"
        assert _arg(cmd, "-i") == "-"
        assert cmd[-1] == "out.mp4"

    def test_mp4_uses_h264_with_faststart(self):
        cmd = build_encoder_command(EncoderConfig(width=640, height=360, fps=30), "out.mp4")

        assert _arg(cmd, "-c:v") == "libx264"
        assert _arg(cmd, "-preset") == "medium"
        assert _arg(cmd, "-movflags") == "+faststart"
        assert "-c:a" not in cmd

    def test_webm_uses_vp9(self):
        cmd = build_encoder_command(EncoderConfig(width=640, height=360, fps=30, format="webm"), "out.webm")

        assert _arg(cmd, "-c:v") == "libvpx-vp9"
        assert _arg(cmd, "-b:v") == "0"
        assert "-movflags" not in cmd

    def test_audio_is_muxed(self):
        config = EncoderConfig(width=640, height=360, fps=30, audio_path="/tmp/mix.wav")

        cmd = build_encoder_command(config, "out.mp4")

        assert cmd.count("-i") == 2
        assert "/tmp/mix.wav" in cmd
        assert ["-map", "0:v:0", "-map", "1:a:0"] == cmd[cmd.index("-map") : cmd.index("-map") + 4]
        assert _arg(cmd, "-c:a") == "aac"
        assert "-shortest" in cmd

    def test_webm_audio_is_opus(self):
        config = EncoderConfig(width=640, height=360, fps=30, format="webm", audio_path="/tmp/mix.wav")

        assert _arg(build_encoder_command(config, "out.webm"), "-c:a") == "libopus"


class TestEncoderConfig:
    def test_frame_size(self):
        assert EncoderConfig(width=4, height=2, fps=30).frame_size == 24

    def test_unknown_quality_is_standard(self):
        assert EncoderConfig(width=4, height=2, fps=30, quality="ultra").crf == 23


class TestFFmpegEncoder:
    def test_missing_binary(self, tmp_path: Path):
        config = EncoderConfig(width=64, height=36, fps=24, ffmpeg_path=str(tmp_path / "no-ffmpeg"))

        with pytest.raises(EncoderError, match="ffmpeg not found"):
            FFmpegEncoder(config, str(tmp_path / "out.mp4")).start()

    def test_write_before_start(self, tmp_path: Path):
        encoder = FFmpegEncoder(EncoderConfig(width=64, height=36, fps=24), str(tmp_path / "out.mp4"))

        with pytest.raises(EncoderError, match="not running"):
            encoder.write_frame(b"\x00" * encoder.config.frame_size)

    @pytest.mark.requires_ffmpeg
    def test_encode_frames(self, tmp_path: Path):
        output = tmp_path / "out.mp4"
        encoder = FFmpegEncoder(EncoderConfig(width=64, height=36, fps=24, quality="draft"), str(output))

        encoder.start()
        for i in range(12):
            encoder.write_frame(bytes([i * 20]) * encoder.config.frame_size)
        result = encoder.finish()

        assert result == str(output)
        assert encoder.frames_written == 12
        assert output.stat().st_size > 0

    @pytest.mark.requires_ffmpeg
    def test_wrong_frame_size_aborts(self, tmp_path: Path):
        output = tmp_path / "out.mp4"
        encoder = FFmpegEncoder(EncoderConfig(width=64, height=36, fps=24), str(output))
        encoder.start()

        with pytest.raises(EncoderError, match="Frame size mismatch"):
            encoder.write_frame(b"\x00" * 10)

        assert not encoder.running
        assert not output.exists()
