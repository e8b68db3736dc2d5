"""Streaming FFmpeg encoder.

Frames are written as raw rgb24 to ffmpeg's stdin in order; an optional
pre-mixed audio file is muxed in the same pass. A failed or aborted encode
removes its partial output file.
"""

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass

from photostory.exceptions import EncoderError

logger = logging.getLogger(__name__)

QUALITY_CRF = {"draft": 28, "standard": 23, "high": 18}
QUALITY_PRESET = {"draft": "veryfast", "standard": "medium", "high": "slow"}
VP9_CPU_USED = {"draft": 5, "standard": 2, "high": 1}


def video_codec_for(fmt: str) -> str:
    return "libvpx-vp9" if fmt == "webm" else "libx264"


def audio_codec_for(fmt: str) -> str:
    return "libopus" if fmt == "webm" else "aac"


@dataclass
class EncoderConfig:
    width: int
    height: int
    fps: int
    format: str = "mp4"
    quality: str = "standard"
    audio_path: str | None = None
    ffmpeg_path: str = "ffmpeg"
    threads: int = 2
    audio_bitrate: str = "192k"

    @property
    def crf(self) -> int:
        return QUALITY_CRF.get(self.quality, QUALITY_CRF["standard"])

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 3


def build_encoder_command(config: EncoderConfig, output_path: str) -> list[str]:
    """FFmpeg argv reading rgb24 frames from stdin."""
    cmd = [
        config.ffmpeg_path,
        "-y",
        "-loglevel", "error",
        "-f", "rawvideo",
        "-pix_fmt", "rgb24",
        "-s", f"{config.width}x{config.height}",
        "-r", str(config.fps),
        "-i", "-",
    ]
    if config.audio_path:
        cmd += ["-i", config.audio_path]

    codec = video_codec_for(config.format)
    cmd += ["-map", "0:v:0"]
    if config.audio_path:
        cmd += ["-map", "1:a:0"]

    cmd += ["-c:v", codec, "-crf", str(config.crf), "-pix_fmt", "yuv420p"]
    if codec == "libvpx-vp9":
        cmd += ["-b:v", "0", "-deadline", "good", "-cpu-used", str(VP9_CPU_USED.get(config.quality, 2))]
    else:
        cmd += ["-preset", QUALITY_PRESET.get(config.quality, "medium")]
    cmd += ["-threads", str(config.threads)]

    if config.audio_path:
        cmd += ["-c:a", audio_codec_for(config.format), "-b:a", config.audio_bitrate, "-shortest"]
    if config.format in ("mp4", "mov"):
        cmd += ["-movflags", "+faststart"]
    cmd.append(output_path)
    return cmd


class FFmpegEncoder:
    """One encode session. start() -> write_frame()* -> finish(), or abort()."""

    def __init__(self, config: EncoderConfig, output_path: str):
        self.config = config
        self.output_path = output_path
        self.frames_written = 0
        self._process: subprocess.Popen | None = None
        self._stderr = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> None:
        cmd = build_encoder_command(self.config, self.output_path)
        logger.info(f"[ENCODE] Starting: {' '.join(cmd)}")
        # stderr goes to a file so a chatty encoder can never fill the pipe and stall
        self._stderr = tempfile.TemporaryFile()
        try:
            self._process = subprocess.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=self._stderr)
        except FileNotFoundError as e:
            self._close_stderr()
            raise EncoderError(f"ffmpeg not found: {self.config.ffmpeg_path}") from e

    def write_frame(self, frame: bytes) -> None:
        if self._process is None or self._process.stdin is None:
            raise EncoderError("Encoder is not running")
        if len(frame) != self.config.frame_size:
            self.abort()
            raise EncoderError(f"Frame size mismatch: got {len(frame)} bytes, expected {self.config.frame_size}")
        try:
            self._process.stdin.write(frame)
        except (BrokenPipeError, ValueError) as e:
            detail = self._stderr_tail()
            self.abort()
            raise EncoderError(f"Encoder exited while writing frame {self.frames_written}: {detail}") from e
        self.frames_written += 1

    def finish(self) -> str:
        if self._process is None:
            raise EncoderError("Encoder is not running")
        try:
            if self._process.stdin:
                self._process.stdin.close()
        except BrokenPipeError:
            pass
        returncode = self._process.wait()
        detail = self._stderr_tail()
        self._process = None
        self._close_stderr()
        if returncode != 0:
            self._remove_output()
            raise EncoderError(f"Encoding failed (exit {returncode}): {detail}")
        logger.info(f"[ENCODE] Finished {self.frames_written} frames -> {self.output_path}")
        return self.output_path

    def abort(self) -> None:
        """Stop the encoder and discard partial output."""
        if self._process is not None:
            self._process.kill()
            try:
                if self._process.stdin:
                    self._process.stdin.close()
            except BrokenPipeError:
                pass
            self._process.wait()
            self._process = None
        self._close_stderr()
        self._remove_output()

    def _stderr_tail(self) -> str:
        if self._stderr is None:
            return ""
        self._stderr.seek(0)
        return self._stderr.read().decode("utf-8", errors="replace")[-2000:]

    def _close_stderr(self) -> None:
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None

    def _remove_output(self) -> None:
        if os.path.exists(self.output_path):
            os.remove(self.output_path)
