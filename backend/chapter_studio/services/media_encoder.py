"""
Encoder FFMPEG alimentado por frames RGB via stdin.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from .errors import EncoderError
from ..models.config import RenderConfig

logger = logging.getLogger(__name__)


class FrameEncoder(Protocol):
    output_path: Path

    async def start(self) -> None:
        ...

    async def write_frame(self, frame: bytes) -> None:
        ...

    async def finish(self) -> Path:
        ...

    async def abort(self) -> None:
        ...


EncoderFactory = Callable[[Path, float, Optional[Path]], FrameEncoder]


class FFmpegEncoder:
    """
    Codifica frames rawvideo (rgb24) em MP4 H.264 com faixa AAC.

    O áudio é completado com silêncio (apad) e tudo é cortado na duração
    exata do capítulo.
    """

    def __init__(
        self,
        output_path: Path,
        duration: float,
        audio_path: Optional[Path] = None,
        width: int = 720,
        height: int = 1280,
        fps: int = 30,
        crf: int = 23,
        preset: str = "veryfast",
        audio_bitrate: int = 128,
        ffmpeg_path: str = "ffmpeg"
    ):
        self.output_path = Path(output_path)
        self.duration = duration
        self.audio_path = Path(audio_path) if audio_path else None
        self.width = width
        self.height = height
        self.fps = fps
        self.crf = crf
        self.preset = preset
        self.audio_bitrate = audio_bitrate
        self.ffmpeg_path = ffmpeg_path
        self.stderr_log = self.output_path.with_suffix(".ffmpeg.log")
        self.frames_written = 0
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_file = None

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 3

    def build_command(self) -> List[str]:
        cmd = [
            self.ffmpeg_path, "-y",
            "-hide_banner", "-loglevel", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{self.width}x{self.height}",
            "-r", str(self.fps),
            "-i", "pipe:0",
        ]
        if self.audio_path:
            cmd.extend(["-i", str(self.audio_path)])

        cmd.extend(["-map", "0:v:0"])
        if self.audio_path:
            cmd.extend([
                "-map", "1:a:0",
                "-af", "apad",
                "-c:a", "aac",
                "-b:a", f"{self.audio_bitrate}k",
            ])

        cmd.extend([
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-t", f"{self.duration:.3f}",
            "-movflags", "+faststart",
            str(self.output_path),
        ])
        return cmd

    async def start(self) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command()
        logger.debug(f"Starting encoder: {' '.join(cmd)}")
        self._stderr_file = open(self.stderr_log, "wb")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=self._stderr_file,
            )
        except (FileNotFoundError, PermissionError) as e:
            self._close_log()
            raise EncoderError(f"FFMPEG not available ({self.ffmpeg_path}): {e}")

    async def write_frame(self, frame: bytes) -> None:
        if self._process is None or self._process.stdin is None:
            raise EncoderError("Encoder not started")
        if len(frame) != self.frame_size:
            raise EncoderError(f"Frame has {len(frame)} bytes, expected {self.frame_size}")
        try:
            self._process.stdin.write(frame)
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            await self._process.wait()
            raise EncoderError(f"Encoder pipe closed: {self._read_error() or e}")
        self.frames_written += 1

    async def finish(self) -> Path:
        if self._process is None:
            raise EncoderError("Encoder not started")
        if self._process.stdin and not self._process.stdin.is_closing():
            self._process.stdin.close()
        returncode = await self._process.wait()
        self._close_log()

        if returncode != 0:
            raise EncoderError(f"FFMPEG exited with {returncode}: {self._read_error()}")
        if not self.output_path.exists() or self.output_path.stat().st_size == 0:
            raise EncoderError("Encoded file was not created")

        logger.info(
            f"Encoded {self.frames_written} frames to {self.output_path.name} "
            f"({self.output_path.stat().st_size / 1024:.1f} KB)"
        )
        return self.output_path

    async def abort(self) -> None:
        if self._process and self._process.returncode is None:
            self._process.kill()
            await self._process.wait()
        self._close_log()

    def _close_log(self) -> None:
        if self._stderr_file and not self._stderr_file.closed:
            self._stderr_file.close()

    def _read_error(self) -> str:
        try:
            content = self.stderr_log.read_text(errors="replace").strip()
        except OSError:
            return ""
        lines = [line for line in content.splitlines() if line.strip()]
        return " | ".join(lines[-5:])


def ffmpeg_encoder_factory(config: RenderConfig) -> EncoderFactory:
    """Fábrica de encoders com os parâmetros de renderização."""

    def factory(output_path: Path, duration: float, audio_path: Optional[Path]) -> FFmpegEncoder:
        return FFmpegEncoder(
            output_path=output_path,
            duration=duration,
            audio_path=audio_path,
            width=config.resolution.width,
            height=config.resolution.height,
            fps=config.fps,
            crf=config.crf,
            preset=config.preset,
            audio_bitrate=config.audio_bitrate,
            ffmpeg_path=config.ffmpeg_path,
        )

    return factory
