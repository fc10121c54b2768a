"""
Orquestrador do pipeline de capítulos.

atribuição de imagens → montagem dos descritores → agendamento da renderização
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .asset_cache import AssetCache
from .assignment_engine import ImageAssignmentEngine
from .background_scheduler import BackgroundScheduler
from .chapter_assembler import ChapterAssembler, validate_plan
from .chapter_compositor import ChapterCompositor
from .errors import StudioError
from .image_search import BraveImageSearch, GoogleImageSearch
from .metadata_store import JsonMetadataStore, MetadataStore
from .object_storage import LocalObjectStorage, SupabaseObjectStorage
from .semantic_assigner import GeminiAssignmentModel, SemanticImageAssigner
from .tts import ElevenLabsSynthesizer, NarrationService, OpenAISpeechSynthesizer
from .video_search import PexelsVideoSearch
from ..models.assignment import AssignmentOutcome
from ..models.chapter import ChapterPlan
from ..models.config import FullConfig, StorageProvider
from ..models.records import (
    ChapterState,
    VideoRecord,
    VideoStatus,
    VideoStatusResponse,
    WaitOutcome,
)
from ..utils.clock import Clock, SystemClock
from ..utils.file_manager import FileManager
from ..utils.logger import get_video_logger

logger = logging.getLogger(__name__)

Assigner = Union[ImageAssignmentEngine, SemanticImageAssigner]


class VideoOrchestrator:
    """
    Executa o pipeline completo de um plano de capítulos.

    Features:
    - Atribuição semântica (Gemini) ou heurística, conforme configuração
    - Montagem sequencial dos capítulos
    - Um BackgroundScheduler por vídeo, consultável pelo id
    """

    def __init__(
        self,
        assembler: ChapterAssembler,
        scheduler_factory: Callable[[], BackgroundScheduler],
        metadata: MetadataStore,
        assigner: Optional[Assigner] = None,
        clock: Optional[Clock] = None,
        closeables: Optional[List[Any]] = None,
        wait_timeout: float = 90.0
    ):
        self.assembler = assembler
        self.scheduler_factory = scheduler_factory
        self.metadata = metadata
        self.assigner = assigner
        self.clock = clock or SystemClock()
        self._closeables = closeables or []
        self.wait_timeout = wait_timeout
        self._schedulers: Dict[str, BackgroundScheduler] = {}
        self._pending: Dict[str, ChapterPlan] = {}
        self._failures: Dict[str, str] = {}

    def submit(self, plan: ChapterPlan) -> None:
        """Valida o plano e o registra como pendente (antes da task em background)."""
        validate_plan(plan)
        if plan.video_id in self._schedulers or plan.video_id in self._pending:
            raise StudioError(f"Video {plan.video_id} already submitted")
        self._pending[plan.video_id] = plan

    async def assign(self, plan: ChapterPlan) -> Optional[AssignmentOutcome]:
        if self.assigner is None:
            logger.warning("No image search configured, chapters will use placeholders")
            return None
        return await self.assigner.run(plan.topic or plan.title, plan.chapters)

    async def run(
        self,
        plan: ChapterPlan,
        owner: Optional[str] = None,
        on_chapter_ready: Optional[Callable[[str, str], Any]] = None
    ) -> Dict[str, str]:
        """
        Executa atribuição, montagem e inicia a renderização.

        Args:
            plan: Plano de capítulos
            owner: Dono do vídeo (gravado nos registros)
            on_chapter_ready: Callback (chapter_id, url) a cada capítulo enviado

        Returns:
            URLs dos capítulos já prontos (o primeiro)

        Raises:
            PlanValidationError: plano inválido
            AssemblyError: falha na montagem de algum capítulo
        """
        vlog = get_video_logger(__name__, plan.video_id)
        self._pending.setdefault(plan.video_id, plan)
        video = VideoRecord(
            id=plan.video_id,
            title=plan.title,
            query=plan.topic,
            chapter_count=len(plan.chapters),
            total_duration=plan.total_duration,
            owner=owner,
        )

        try:
            validate_plan(plan)
            outcome = await self.assign(plan)
            if outcome is not None:
                vlog.info(f"Image assignment done ({outcome.strategy}, {len(outcome.warnings)} warnings)")
            descriptors = await self.assembler.assemble_all(plan, outcome)
        except StudioError as e:
            vlog.error(f"Pipeline aborted before rendering: {e}")
            self._failures[plan.video_id] = str(e)
            self._pending.pop(plan.video_id, None)
            await self.metadata.create_video(video.model_copy(update={"status": VideoStatus.FAILED}))
            raise

        scheduler = self.scheduler_factory()
        self._schedulers[plan.video_id] = scheduler
        self._pending.pop(plan.video_id, None)
        urls = await scheduler.start(video, descriptors, on_chapter_ready=on_chapter_ready)
        vlog.info(f"First chapter ready, {len(descriptors) - len(urls)} chapters queued")
        return urls

    # ============== CONSULTA ==============

    def get_scheduler(self, video_id: str) -> Optional[BackgroundScheduler]:
        return self._schedulers.get(video_id)

    def failure(self, video_id: str) -> Optional[str]:
        return self._failures.get(video_id)

    async def status(self, video_id: str) -> Optional[VideoStatusResponse]:
        scheduler = self._schedulers.get(video_id)
        if scheduler is not None:
            return scheduler.status()

        plan = self._pending.get(video_id)
        if plan is not None:
            return VideoStatusResponse(
                video=VideoRecord(
                    id=plan.video_id,
                    title=plan.title,
                    query=plan.topic,
                    chapter_count=len(plan.chapters),
                    total_duration=plan.total_duration,
                ),
                chapters={c.id: ChapterState.QUEUED for c in plan.chapters},
            )

        # vídeo de uma execução anterior: reconstrói a partir dos registros
        video = await self.metadata.get_video(video_id)
        if video is None:
            return None
        records = await self.metadata.list_chapters(video_id)
        failed = next((r.chapter_id for r in records if r.status == ChapterState.FAILED), None)
        return VideoStatusResponse(
            video=video,
            chapters={r.chapter_id: r.status for r in records},
            urls={r.chapter_id: r.storage_url for r in records if r.storage_url},
            stuck=failed is not None and video.status == VideoStatus.PROCESSING,
            failed_chapter=failed,
            errors={r.chapter_id: r.error for r in records if r.error},
        )

    async def wait_for_chapter(
        self,
        video_id: str,
        chapter_id: str,
        timeout: Optional[float] = None
    ) -> WaitOutcome:
        """
        Espera um capítulo, inclusive enquanto o vídeo ainda está sendo montado.

        Raises:
            StudioError: vídeo ou capítulo desconhecido
        """
        started = self.clock.now()
        scheduler = self._schedulers.get(video_id)
        while scheduler is None:
            if video_id in self._failures:
                return WaitOutcome.FAILED
            plan = self._pending.get(video_id)
            if plan is None:
                return await self._outcome_from_records(video_id, chapter_id)
            if chapter_id not in {c.id for c in plan.chapters}:
                raise StudioError(f"Unknown chapter {chapter_id}")

            limit = timeout if timeout is not None else self.wait_timeout
            remaining = limit - (self.clock.now() - started)
            if remaining <= 0:
                logger.warning(f"[Video {video_id}] Chapter {chapter_id} not ready after {limit:.1f}s (still assembling)")
                return WaitOutcome.TIMED_OUT
            await self.clock.sleep(min(0.5, remaining))
            scheduler = self._schedulers.get(video_id)

        if timeout is not None:
            timeout = max(0.0, timeout - (self.clock.now() - started))
        return await scheduler.wait_for_chapter(chapter_id, timeout)

    async def _outcome_from_records(self, video_id: str, chapter_id: str) -> WaitOutcome:
        # nenhum scheduler vivo para este vídeo: o estado gravado é final
        video = await self.metadata.get_video(video_id)
        if video is None:
            raise StudioError(f"Unknown video {video_id}")
        for record in await self.metadata.list_chapters(video_id):
            if record.chapter_id == chapter_id:
                if record.status == ChapterState.READY:
                    return WaitOutcome.READY
                if record.status == ChapterState.FAILED:
                    return WaitOutcome.FAILED
        if video.status == VideoStatus.FAILED:
            return WaitOutcome.FAILED
        return WaitOutcome.TIMED_OUT

    async def close(self):
        for scheduler in self._schedulers.values():
            await scheduler.close()
        for resource in self._closeables:
            close = getattr(resource, "close", None)
            if close is not None:
                await close()


def build_orchestrator(
    config: FullConfig,
    base_path: str = "storage",
    clock: Optional[Clock] = None
) -> VideoOrchestrator:
    """Monta o orquestrador e todos os serviços a partir da FullConfig."""
    clock = clock or SystemClock()
    api = config.api

    cache = AssetCache(
        max_size_bytes=int(config.cache.max_size_mb * 1024 * 1024),
        max_age_seconds=config.cache.max_age_minutes * 60,
        clock=clock,
        timeout=config.cache.fetch_timeout,
    )

    brave = BraveImageSearch(api.brave.api_key) if api.brave.usable else None
    google = (
        GoogleImageSearch(api.google.api_key, api.google.search_engine_id)
        if api.google.usable and api.google.search_engine_id else None
    )
    search = brave or google
    secondary = google if brave is not None else None

    assigner: Optional[Assigner] = None
    if search is not None:
        if config.assignment.use_model and api.gemini.usable:
            model = GeminiAssignmentModel(api.gemini.api_key, api.gemini.model)
            assigner = SemanticImageAssigner(
                search,
                completion=model.complete,
                secondary_search=secondary,
                config=config.assignment,
                safesearch=api.brave.safesearch,
            )
        else:
            assigner = ImageAssignmentEngine(search, config.assignment, safesearch=api.brave.safesearch)

    primary_tts = (
        ElevenLabsSynthesizer(api.elevenlabs.api_key, api.elevenlabs.voice_id, api.elevenlabs.model_id)
        if api.elevenlabs.usable else None
    )
    secondary_tts = (
        OpenAISpeechSynthesizer(api.openai.api_key, api.openai.model, api.openai.voice, api.openai.speed)
        if api.openai.usable else None
    )
    narration = NarrationService(primary_tts, secondary_tts, speed=api.openai.speed)

    stock_video = (
        PexelsVideoSearch(
            api.pexels.api_key,
            per_page=api.pexels.per_page,
            preferred_width=config.render.resolution.width,
        )
        if api.pexels.usable else None
    )

    assembler = ChapterAssembler(narration, stock_video, search, cache, config.render)
    file_manager = FileManager(base_path=base_path)
    compositor = ChapterCompositor(config.render, cache, file_manager, clock=clock)

    if config.storage.provider == StorageProvider.SUPABASE and config.storage.supabase_url:
        storage = SupabaseObjectStorage(
            config.storage.supabase_url,
            config.storage.supabase_key,
            config.storage.bucket,
        )
    else:
        storage = LocalObjectStorage(config.storage.local_dir, config.storage.public_base_url)
    metadata = JsonMetadataStore(config.storage.metadata_dir)

    render_lock = asyncio.Lock()

    def scheduler_factory() -> BackgroundScheduler:
        return BackgroundScheduler(
            compositor,
            storage,
            metadata,
            config=config.scheduler,
            clock=clock,
            file_manager=file_manager,
            render_lock=render_lock,
        )

    closeables = [c for c in (cache, brave, google, narration, stock_video, storage) if c is not None]
    logger.info(
        f"Orchestrator ready: search={'brave' if brave else 'google' if google else 'none'}, "
        f"assignment={type(assigner).__name__ if assigner else 'none'}, "
        f"tts={len(narration.providers)} providers, storage={config.storage.provider.value}"
    )
    return VideoOrchestrator(
        assembler,
        scheduler_factory,
        metadata,
        assigner=assigner,
        clock=clock,
        closeables=closeables,
        wait_timeout=config.scheduler.wait_timeout_seconds,
    )
