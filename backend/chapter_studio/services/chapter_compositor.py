"""
Renderização de um capítulo: frames compostos + narração → MP4.
"""

import asyncio
import io
import logging
from pathlib import Path
from typing import Callable, List, Optional

from PIL import Image

from .asset_cache import AssetCache
from .background_video import BackgroundVideoDecoder, BackgroundVideoError
from .errors import AssetFetchError, ChapterRenderError
from .frame_composer import FrameComposer
from .media_encoder import EncoderFactory, FrameEncoder, ffmpeg_encoder_factory
from .placeholder import render_placeholder
from .timeline import validate_timeline
from ..models.chapter import ChapterDescriptor
from ..models.config import RenderConfig
from ..models.render import MediaBlob, RenderStatus
from ..utils.clock import Clock, SystemClock
from ..utils.file_manager import FileManager
from ..utils.progress import ProgressChannel

logger = logging.getLogger(__name__)

DecoderFactory = Callable[[Path, int, int, int, float], BackgroundVideoDecoder]


class ChapterCompositor:
    """
    Renderiza um ChapterDescriptor em um arquivo MP4.

    Features:
    - Superfície fixa (padrão 720x1280 @ 30fps)
    - Imagem com falha vira placeholder, vídeo de fundo com falha vira cor sólida
    - Erro de encoder ou timeline inválida é fatal para o capítulo
    - Progresso a cada N frames pelo ProgressChannel
    - Ritmo de frames pelo relógio injetado
    """

    def __init__(
        self,
        config: Optional[RenderConfig] = None,
        cache: Optional[AssetCache] = None,
        file_manager: Optional[FileManager] = None,
        encoder_factory: Optional[EncoderFactory] = None,
        decoder_factory: Optional[DecoderFactory] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or RenderConfig()
        self.cache = cache or AssetCache()
        self.file_manager = file_manager or FileManager()
        self.encoder_factory = encoder_factory or ffmpeg_encoder_factory(self.config)
        self.decoder_factory = decoder_factory or self._default_decoder
        self.clock = clock or SystemClock()

    @property
    def width(self) -> int:
        return self.config.resolution.width

    @property
    def height(self) -> int:
        return self.config.resolution.height

    def _default_decoder(self, source: Path, width: int, height: int, fps: int, duration: float):
        return BackgroundVideoDecoder(source, width, height, fps, duration, self.config.ffmpeg_path)

    def frame_count(self, duration: float) -> int:
        return max(1, round(duration * self.config.fps))

    # ============== ASSETS ==============

    async def _load_images(self, descriptor: ChapterDescriptor) -> List[Image.Image]:
        images = []
        for i, asset in enumerate(descriptor.assets.images):
            try:
                data = await self.cache.get(asset.url)
                img = Image.open(io.BytesIO(data))
                img.load()
                images.append(img.convert("RGBA"))
            except (AssetFetchError, OSError, ValueError, Image.DecompressionBombError) as e:
                logger.warning(f"Chapter {descriptor.id}: image {i + 1} unavailable, using placeholder ({e})")
                descriptor.degradations.append(f"image_{i}_placeholder")
                images.append(render_placeholder(i, self.width, self.height))
        return images

    async def _open_background(self, descriptor: ChapterDescriptor, workdir: Path) -> Optional[BackgroundVideoDecoder]:
        url = descriptor.assets.background_video
        if not url:
            return None
        try:
            data = await self.cache.get(url)
            source = workdir / "background.mp4"
            source.write_bytes(data)
            decoder = self.decoder_factory(source, self.width, self.height, self.config.fps, descriptor.duration)
            await decoder.start()
            return decoder
        except (AssetFetchError, BackgroundVideoError, OSError) as e:
            logger.warning(f"Chapter {descriptor.id}: background video unavailable, using solid background ({e})")
            descriptor.degradations.append("background_video_solid")
            return None

    def _write_audio(self, descriptor: ChapterDescriptor, workdir: Path) -> Path:
        audio = descriptor.assets.audio
        path = workdir / f"narration.{audio.format}"
        path.write_bytes(audio.data)
        return path

    # ============== RENDER ==============

    async def render(
        self,
        descriptor: ChapterDescriptor,
        progress: Optional[ProgressChannel] = None,
        video_id: str = "adhoc"
    ) -> MediaBlob:
        """
        Renderiza o capítulo.

        Args:
            descriptor: Descritor montado pelo ChapterAssembler
            progress: Canal de progresso (opcional)
            video_id: Usado para o diretório temporário

        Returns:
            MediaBlob com o MP4 gerado

        Raises:
            ChapterRenderError: timeline inválida ou falha no encoder
        """
        progress = progress or ProgressChannel(f"render:{descriptor.id}")
        started = self.clock.now()

        try:
            validate_timeline(descriptor.timeline, descriptor.duration, len(descriptor.assets.images))
        except ChapterRenderError as e:
            e.chapter_id = descriptor.id
            await progress.report(descriptor.id, 0, RenderStatus.FAILED, str(e))
            raise

        await progress.report(descriptor.id, 0)
        workdir = self.file_manager.chapter_dir(video_id, descriptor.id)
        output_path = workdir / f"{descriptor.id}.mp4"

        composer = FrameComposer(
            self.width,
            self.height,
            background_color=self.config.background_color,
            text_config=self.config.text,
        )
        composer.set_images(await self._load_images(descriptor))
        decoder = await self._open_background(descriptor, workdir)

        fps = self.config.fps
        total_frames = self.frame_count(descriptor.duration)
        frame_interval = 1.0 / fps if self.config.realtime_pacing else 0.0
        every = self.config.progress_every_frames

        encoder: Optional[FrameEncoder] = None
        try:
            audio_path = self._write_audio(descriptor, workdir)
            encoder = self.encoder_factory(output_path, descriptor.duration, audio_path)
            await encoder.start()

            for index in range(total_frames):
                t = index / fps
                background = await decoder.next_frame() if decoder else None
                frame = composer.compose_at(descriptor.timeline, t, background)
                await encoder.write_frame(frame.tobytes())

                if (index + 1) % every == 0 and index + 1 < total_frames:
                    await progress.report(descriptor.id, (index + 1) / total_frames * 100)
                await self.clock.sleep(frame_interval)

            path = await encoder.finish()
        except asyncio.CancelledError:
            if encoder is not None:
                await encoder.abort()
            raise
        except Exception as e:
            if encoder is not None:
                await encoder.abort()
            logger.error(f"Chapter {descriptor.id} render failed: {e}")
            await progress.report(descriptor.id, 0, RenderStatus.FAILED, str(e))
            if isinstance(e, ChapterRenderError):
                e.chapter_id = descriptor.id
                raise
            raise ChapterRenderError(str(e), descriptor.id) from e
        finally:
            if decoder is not None:
                await decoder.close()

        render_time_ms = int((self.clock.now() - started) * 1000)
        size = path.stat().st_size
        await progress.report(descriptor.id, 100, RenderStatus.COMPLETE)
        logger.info(
            f"Chapter {descriptor.id} rendered: {total_frames} frames, "
            f"{size / 1024:.1f} KB in {render_time_ms}ms"
        )
        return MediaBlob(
            path=str(path),
            content_type="video/mp4",
            size_bytes=size,
            duration_seconds=descriptor.duration,
            render_time_ms=render_time_ms,
        )
