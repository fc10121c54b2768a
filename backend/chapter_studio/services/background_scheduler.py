"""
Agendador de renderização em segundo plano.

O primeiro capítulo é renderizado e enviado antes de start() retornar
(começo rápido da reprodução); os demais seguem um por vez em uma task.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .errors import StudioError
from .metadata_store import MetadataStore
from .object_storage import ObjectStorage, chapter_object_path
from ..models.chapter import ChapterDescriptor
from ..models.config import SchedulerConfig
from ..models.records import (
    ChapterRecord,
    ChapterState,
    VideoRecord,
    VideoStatus,
    VideoStatusResponse,
    WaitOutcome,
)
from ..models.render import MediaBlob, RenderProgress
from ..utils.clock import Clock, SystemClock
from ..utils.file_manager import FileManager
from ..utils.logger import get_video_logger
from ..utils.progress import ProgressChannel

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[str, str], Any]
ProgressCallback = Callable[[RenderProgress], Any]
StuckCallback = Callable[[str, str, str], Any]
StallCallback = Callable[[str, float], Any]


async def _call(callback: Optional[Callable], *args) -> None:
    """Chama callback síncrono ou assíncrono, logando erros."""
    if callback is None:
        return
    try:
        result = callback(*args)
        if asyncio.iscoroutine(result):
            await result
    except Exception as e:
        logger.warning(f"Scheduler callback error: {e}")


class BackgroundScheduler:
    """
    Renderiza e envia os capítulos de um vídeo em ordem crescente.

    Features:
    - Primeiro capítulo síncrono, restantes em background com cooldown
    - Estados por capítulo: queued → rendering → uploading → ready | failed
    - Falha em um capítulo interrompe a progressão (job travado)
    - Espera limitada por capítulo para o consumidor de reprodução
    """

    def __init__(
        self,
        compositor,
        storage: ObjectStorage,
        metadata: MetadataStore,
        config: Optional[SchedulerConfig] = None,
        clock: Optional[Clock] = None,
        file_manager: Optional[FileManager] = None,
        on_stuck: Optional[StuckCallback] = None,
        on_stall: Optional[StallCallback] = None,
        render_lock: Optional[asyncio.Lock] = None
    ):
        self.compositor = compositor
        self.storage = storage
        self.metadata = metadata
        self.config = config or SchedulerConfig()
        self.clock = clock or SystemClock()
        self.file_manager = file_manager
        self.on_stuck = on_stuck
        self.on_stall = on_stall
        # compartilhado entre vídeos: uma renderização por vez no processo
        self.render_lock = render_lock or asyncio.Lock()

        self.video: Optional[VideoRecord] = None
        self.chapters: List[ChapterDescriptor] = []
        self.states: Dict[str, ChapterState] = {}
        self.urls: Dict[str, str] = {}
        self.errors: Dict[str, str] = {}
        self.stuck = False
        self.progress = ProgressChannel("render")
        self._on_chapter_ready: Optional[ReadyCallback] = None
        self._task: Optional[asyncio.Task] = None
        self._is_rendering = False
        self._started = False
        self._log = logger

    # ============== CICLO DE VIDA ==============

    async def start(
        self,
        video: VideoRecord,
        chapters: List[ChapterDescriptor],
        on_chapter_ready: Optional[ReadyCallback] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> Dict[str, str]:
        """
        Cria o registro do vídeo, renderiza o primeiro capítulo e agenda o resto.

        Returns:
            URLs dos capítulos prontos até aqui (normalmente só o primeiro)
        """
        if self._started:
            raise StudioError(f"Scheduler for video {self.video.id} already started")
        if not chapters:
            raise StudioError(f"Video {video.id} has no chapters to render")
        self._started = True

        self.chapters = sorted(chapters, key=lambda c: c.order)
        self.states = {c.id: ChapterState.QUEUED for c in self.chapters}
        self.video = video.model_copy(update={
            "status": VideoStatus.PROCESSING,
            "chapter_count": len(self.chapters),
        })
        self._log = get_video_logger(__name__, video.id)
        self._on_chapter_ready = on_chapter_ready
        self.progress = ProgressChannel(f"render:{video.id}")
        if on_progress is not None:
            self.progress.subscribe(on_progress)

        await self.metadata.create_video(self.video)
        self._log.info(f"Starting render of {len(self.chapters)} chapters")

        first, rest = self.chapters[0], self.chapters[1:]
        if await self._process_chapter(first):
            if rest:
                self._task = asyncio.create_task(self._render_remaining(rest))
            else:
                await self._finalize()
        return dict(self.urls)

    async def _render_remaining(self, chapters: List[ChapterDescriptor]) -> None:
        if self._is_rendering:
            self._log.warning("Background render already in progress, ignoring")
            return
        self._is_rendering = True
        try:
            for chapter in chapters:
                await self.clock.sleep(self.config.cooldown_seconds)
                if not await self._process_chapter(chapter):
                    return
            await self._finalize()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stuck = True
            self._log.error(f"Background render aborted: {e}")
        finally:
            self._is_rendering = False

    async def _process_chapter(self, chapter: ChapterDescriptor) -> bool:
        video_id = self.video.id
        try:
            self.states[chapter.id] = ChapterState.RENDERING
            async with self.render_lock:
                blob: MediaBlob = await self.compositor.render(chapter, self.progress, video_id=video_id)

            self.states[chapter.id] = ChapterState.UPLOADING
            data = await asyncio.to_thread(blob.read_bytes)
            url = await self.storage.upload(
                chapter_object_path(video_id, chapter.id),
                data,
                blob.content_type,
            )

            await self.metadata.upsert_chapter(ChapterRecord(
                video_id=video_id,
                chapter_id=chapter.id,
                order_index=chapter.order,
                duration=chapter.duration,
                storage_url=url,
                render_time=blob.render_time_ms,
                file_size=blob.size_bytes,
                owner=self.video.owner,
                status=ChapterState.READY,
                free=chapter.free,
            ))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._mark_failed(chapter, e)
            return False
        finally:
            if self.file_manager is not None:
                self.file_manager.cleanup_chapter(video_id, chapter.id)

        self.urls[chapter.id] = url
        self.states[chapter.id] = ChapterState.READY
        self._log.info(f"Chapter {chapter.id} ready ({blob.size_bytes / 1024:.1f} KB, {blob.render_time_ms}ms)")
        await _call(self._on_chapter_ready, chapter.id, url)
        return True

    async def _mark_failed(self, chapter: ChapterDescriptor, error: Exception) -> None:
        self.states[chapter.id] = ChapterState.FAILED
        self.errors[chapter.id] = str(error)
        self.stuck = True
        try:
            await self.metadata.upsert_chapter(ChapterRecord(
                video_id=self.video.id,
                chapter_id=chapter.id,
                order_index=chapter.order,
                duration=chapter.duration,
                owner=self.video.owner,
                status=ChapterState.FAILED,
                error=str(error),
                free=chapter.free,
            ))
        except Exception as e:
            self._log.error(f"Could not record failure of chapter {chapter.id}: {e}")

        pending = [c.id for c in self.chapters if self.states[c.id] == ChapterState.QUEUED]
        self._log.error(
            f"Chapter {chapter.id} failed, video stuck in processing "
            f"({len(pending)} chapters halted): {error}"
        )
        await _call(self.on_stuck, self.video.id, chapter.id, str(error))

    async def _finalize(self) -> None:
        if all(s == ChapterState.READY for s in self.states.values()):
            self.video = await self.metadata.update_video_status(self.video.id, VideoStatus.READY) or self.video
            self._log.info("All chapters ready")
            if self.file_manager is not None:
                self.file_manager.cleanup_video(self.video.id)

    async def join(self) -> None:
        """Aguarda o fim da renderização em background."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """Cancela capítulos ainda não iniciados (usado no shutdown)."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    # ============== CONSULTA ==============

    def chapter_state(self, chapter_id: str) -> Optional[ChapterState]:
        return self.states.get(chapter_id)

    def is_chapter_ready(self, chapter_id: str) -> bool:
        return self.states.get(chapter_id) == ChapterState.READY

    def get_chapter_url(self, chapter_id: str) -> Optional[str]:
        return self.urls.get(chapter_id)

    @property
    def is_rendering(self) -> bool:
        return self._is_rendering

    async def wait_for_chapter(self, chapter_id: str, timeout: Optional[float] = None) -> WaitOutcome:
        """
        Espera um capítulo ficar pronto, com limite de tempo.

        Returns:
            READY, FAILED ou TIMED_OUT (o consumidor deve mostrar buffering)
        """
        if chapter_id not in self.states:
            raise StudioError(f"Unknown chapter {chapter_id}")

        timeout = self.config.wait_timeout_seconds if timeout is None else timeout
        started = self.clock.now()
        deadline = started + timeout
        while True:
            state = self.states[chapter_id]
            if state == ChapterState.READY:
                return WaitOutcome.READY
            if state == ChapterState.FAILED:
                return WaitOutcome.FAILED
            now = self.clock.now()
            if now >= deadline:
                waited = now - started
                self._log.warning(f"Chapter {chapter_id} not ready after {waited:.1f}s")
                await _call(self.on_stall, chapter_id, waited)
                return WaitOutcome.TIMED_OUT
            await self.clock.sleep(min(self.config.poll_interval_seconds, deadline - now))

    def status(self) -> VideoStatusResponse:
        failed = next((cid for cid, s in self.states.items() if s == ChapterState.FAILED), None)
        return VideoStatusResponse(
            video=self.video,
            chapters=dict(self.states),
            urls=dict(self.urls),
            stuck=self.stuck,
            failed_chapter=failed,
            errors=dict(self.errors),
            degradations={c.id: list(c.degradations) for c in self.chapters if c.degradations},
        )
