"""
Decodificação do vídeo de fundo em frames RGB via FFMPEG.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from .errors import StudioError

logger = logging.getLogger(__name__)


class BackgroundVideoError(StudioError):
    pass


class BackgroundVideoDecoder:
    """
    Lê um vídeo em loop, redimensionado e cortado para o tamanho do frame.

    Quando o vídeo acaba antes do capítulo, o último frame é repetido.
    """

    def __init__(
        self,
        source: Path,
        width: int,
        height: int,
        fps: int,
        duration: float,
        ffmpeg_path: str = "ffmpeg"
    ):
        self.source = Path(source)
        self.width = width
        self.height = height
        self.fps = fps
        self.duration = duration
        self.ffmpeg_path = ffmpeg_path
        self._process: Optional[asyncio.subprocess.Process] = None
        self._last: Optional[Image.Image] = None
        self._exhausted = False
        self._pending: Optional[Image.Image] = None

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 3

    async def start(self) -> None:
        vf = (
            f"scale={self.width}:{self.height}:force_original_aspect_ratio=increase,"
            f"crop={self.width}:{self.height},fps={self.fps}"
        )
        cmd = [
            self.ffmpeg_path,
            "-hide_banner", "-loglevel", "error",
            "-stream_loop", "-1",
            "-i", str(self.source),
            "-an",
            "-vf", vf,
            "-t", f"{self.duration:.3f}",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "pipe:1",
        ]
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise BackgroundVideoError(f"Cannot start background decoder: {e}")

        first = await self.next_frame()
        if first is None:
            await self.close()
            raise BackgroundVideoError(f"Background video produced no frames: {self.source.name}")
        self._pending = first

    async def next_frame(self) -> Optional[Image.Image]:
        if self._pending is not None:
            frame, self._pending = self._pending, None
            return frame
        if self._exhausted or self._process is None or self._process.stdout is None:
            return self._last
        try:
            data = await self._process.stdout.readexactly(self.frame_size)
        except asyncio.IncompleteReadError:
            self._exhausted = True
            return self._last
        self._last = Image.frombytes("RGB", (self.width, self.height), data)
        return self._last

    async def close(self) -> None:
        if self._process and self._process.returncode is None:
            self._process.kill()
            await self._process.wait()
