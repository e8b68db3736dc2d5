"""Local streaming encoder for client exports.

Frames go to an ffmpeg subprocess as they are painted; ffmpeg writes the
webm file incrementally, so memory use does not grow with video length.
"""

import asyncio
import logging
import os
from typing import Protocol

from photostory.exceptions import EncoderError
from photostory.render.encoder import EncoderConfig, build_encoder_command

logger = logging.getLogger(__name__)


class StreamingEncoder(Protocol):
    async def start(self) -> None: ...

    async def write_frame(self, frame: bytes) -> None: ...

    async def finish(self) -> str: ...

    async def close(self) -> None: ...


class LocalStreamingEncoder:
    """ffmpeg child process fed over an asyncio pipe.

    close() is safe to call in any state and always leaves no process behind;
    an unfinished output file is removed.
    """

    def __init__(self, config: EncoderConfig, output_path: str):
        self.config = config
        self.output_path = output_path
        self.frames_written = 0
        self._process: asyncio.subprocess.Process | None = None
        self._finished = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        cmd = build_encoder_command(self.config, self.output_path)
        logger.info(f"[EXPORT] Starting local encoder: {' '.join(cmd)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EncoderError(f"ffmpeg not found: {self.config.ffmpeg_path}") from e
        self._finished = False
        self.frames_written = 0

    async def write_frame(self, frame: bytes) -> None:
        if self._process is None or self._process.stdin is None:
            raise EncoderError("Encoder is not running")
        if len(frame) != self.config.frame_size:
            raise EncoderError(f"Frame size mismatch: got {len(frame)} bytes, expected {self.config.frame_size}")
        try:
            self._process.stdin.write(frame)
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EncoderError(f"Encoder exited while writing frame {self.frames_written}") from e
        self.frames_written += 1

    async def finish(self) -> str:
        if self._process is None:
            raise EncoderError("Encoder is not running")
        process = self._process
        if process.stdin is not None:
            process.stdin.close()
        _, stderr = await process.communicate()
        self._process = None
        if process.returncode != 0:
            self._remove_output()
            detail = stderr.decode("utf-8", errors="replace")[-2000:] if stderr else ""
            raise EncoderError(f"Encoding failed (exit {process.returncode}): {detail}")
        self._finished = True
        logger.info(f"[EXPORT] Encoded {self.frames_written} frames -> {self.output_path}")
        return self.output_path

    async def close(self) -> None:
        if self._process is not None:
            process = self._process
            self._process = None
            if process.returncode is None:
                process.kill()
            await process.wait()
        if not self._finished:
            self._remove_output()

    def _remove_output(self) -> None:
        if os.path.exists(self.output_path):
            os.remove(self.output_path)
