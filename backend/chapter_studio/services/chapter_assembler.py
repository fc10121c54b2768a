"""
Montagem dos descritores de capítulo (assets + timeline).
"""

import asyncio
import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple, Union

import httpx

from .asset_cache import AssetCache
from .errors import AssemblyError, PlanValidationError, StudioError
from .image_search import ImageSearchProvider
from .placeholder import placeholder_data_uri
from .timeline import build_timeline, image_position, validate_timeline
from .tts import NarrationService
from .video_search import StockVideoProvider
from ..models.assignment import AssignmentOutcome
from ..models.chapter import (
    AssetBundle,
    ChapterDescriptor,
    ChapterInfo,
    ChapterPlan,
    ImageAsset,
    SAFE_ID_PATTERN,
)
from ..models.config import Orientation, RenderConfig

logger = logging.getLogger(__name__)

Assignments = Union[AssignmentOutcome, Dict[str, List[str]], None]

SEARCH_FALLBACK_COUNT = 3
NARRATION_QUERY_CHARS = 50

_SAFE_ID = re.compile(SAFE_ID_PATTERN)


def validate_plan(plan: ChapterPlan) -> None:
    """
    Raises:
        PlanValidationError: plano sem capítulos, duração inválida, id inválido ou id repetido
    """
    if not _SAFE_ID.match(plan.video_id):
        raise PlanValidationError(f"Invalid video id {plan.video_id!r}")
    if not plan.chapters:
        raise PlanValidationError(f"Plan {plan.video_id} has no chapters")
    seen = set()
    for chapter in plan.chapters:
        if not _SAFE_ID.match(chapter.id):
            raise PlanValidationError(f"Invalid chapter id {chapter.id!r}")
        if chapter.duration <= 0:
            raise PlanValidationError(f"Chapter {chapter.id} has non-positive duration {chapter.duration}")
        if chapter.id in seen:
            raise PlanValidationError(f"Duplicate chapter id {chapter.id}")
        seen.add(chapter.id)


class ChapterAssembler:
    """
    Monta o ChapterDescriptor de cada capítulo.

    Cadeias de fallback (nunca bloqueiam a renderização):
    - Vídeo de fundo: palavras-chave → narração → nenhum
    - Imagens: atribuídas → busca por capítulo → placeholder
    - Áudio: TTS primário → secundário → silêncio

    Cada nível de fallback atingido fica em ``descriptor.degradations``.
    """

    def __init__(
        self,
        narration: NarrationService,
        stock_video: Optional[StockVideoProvider] = None,
        image_search: Optional[ImageSearchProvider] = None,
        cache: Optional[AssetCache] = None,
        render_config: Optional[RenderConfig] = None
    ):
        self.narration = narration
        self.stock_video = stock_video
        self.image_search = image_search
        self.cache = cache
        self.render_config = render_config or RenderConfig()
        self._used_urls: set = set()

    @property
    def width(self) -> int:
        return self.render_config.resolution.width

    @property
    def height(self) -> int:
        return self.render_config.resolution.height

    def _queries(self, info: ChapterInfo) -> List[Tuple[str, str]]:
        """(origem, consulta): palavras-chave primeiro, depois o início da narração."""
        queries = []
        if info.keywords:
            queries.append(("keywords", " ".join(info.keywords[:3])))
        if info.narration.strip():
            queries.append(("narration", info.narration[:NARRATION_QUERY_CHARS]))
        return queries

    # ============== VÍDEO DE FUNDO ==============

    async def _find_background(self, info: ChapterInfo, degradations: List[str]) -> Optional[str]:
        if self.stock_video is None:
            return None

        orientation: Orientation = self.render_config.resolution.orientation
        for origin, query in self._queries(info):
            try:
                url = await self.stock_video.search_for_chapter(query, orientation)
            except (StudioError, httpx.HTTPError) as e:
                logger.warning(f"Stock video search failed for chapter {info.id}: {e}")
                degradations.append("background_video_error")
                return None
            if url:
                return url
            degradations.append(f"background_video_{origin}_miss")

        logger.info(f"No background video for chapter {info.id}")
        degradations.append("background_video_none")
        return None

    # ============== IMAGENS ==============

    async def _search_images(self, info: ChapterInfo, needed: int, degradations: List[str]) -> List[str]:
        if self.image_search is None or needed <= 0:
            return []

        found: List[str] = []
        for _, query in self._queries(info):
            try:
                candidates = await self.image_search.search(query, count=SEARCH_FALLBACK_COUNT)
            except (StudioError, httpx.HTTPError) as e:
                logger.warning(f"Image search failed for chapter {info.id}: {e}")
                degradations.append("image_search_error")
                break
            for candidate in candidates:
                if candidate.url and candidate.url not in self._used_urls and candidate.url not in found:
                    found.append(candidate.url)
                if len(found) >= needed:
                    return found
        return found

    async def _collect_images(
        self,
        info: ChapterInfo,
        assigned_urls: Optional[Sequence[str]],
        degradations: List[str]
    ) -> List[ImageAsset]:
        urls = [u for u in (assigned_urls or []) if u]
        minimum = self.render_config.min_images_per_chapter

        if len(urls) < minimum:
            degradations.append("images_search_fallback")
            urls += await self._search_images(info, minimum - len(urls), degradations)

        placeholders = 0
        while len(urls) < minimum:
            urls.append(placeholder_data_uri(len(urls), self.width, self.height))
            placeholders += 1
        if placeholders:
            logger.warning(f"Chapter {info.id}: using {placeholders} placeholder image(s)")
            degradations.append("images_placeholder")

        self._used_urls.update(urls)
        alt = info.narration[:NARRATION_QUERY_CHARS]
        return [
            ImageAsset(url=url, alt=alt, position=image_position(i))
            for i, url in enumerate(urls)
        ]

    async def _warm_cache(self, images: Sequence[ImageAsset], background: Optional[str]) -> None:
        if self.cache is None:
            return
        urls = [img.url for img in images if not img.url.startswith("data:")]
        if background:
            urls.append(background)
        await self.cache.preload(urls)

    # ============== MONTAGEM ==============

    async def assemble(self, info: ChapterInfo, assigned_urls: Optional[Sequence[str]] = None) -> ChapterDescriptor:
        """
        Monta o descritor de um capítulo.

        Args:
            info: Capítulo do plano
            assigned_urls: URLs vindas da atribuição de imagens

        Returns:
            ChapterDescriptor pronto para o compositor
        """
        if info.duration <= 0:
            raise PlanValidationError(f"Chapter {info.id} has non-positive duration {info.duration}")

        degradations: List[str] = []
        background = await self._find_background(info, degradations)
        images = await self._collect_images(info, assigned_urls, degradations)

        (audio, tts_degradations), _ = await asyncio.gather(
            self.narration.narrate(info.narration),
            self._warm_cache(images, background),
        )
        degradations.extend(tts_degradations)

        timeline = build_timeline(info.duration, images, info.narration, background)
        validate_timeline(timeline, info.duration, len(images))

        if degradations:
            logger.info(f"Chapter {info.id} assembled with degradations: {', '.join(degradations)}")
        else:
            logger.info(f"Chapter {info.id} assembled ({len(images)} images, {len(timeline)} entries)")

        return ChapterDescriptor(
            id=info.id,
            order=info.order,
            duration=info.duration,
            text=info.narration,
            timeline=timeline,
            assets=AssetBundle(images=images, audio=audio, background_video=background),
            degradations=degradations,
        )

    async def assemble_all(self, plan: ChapterPlan, assignments: Assignments = None) -> List[ChapterDescriptor]:
        """
        Monta todos os capítulos, em ordem e sequencialmente.

        Raises:
            PlanValidationError: plano inválido
            AssemblyError: qualquer capítulo falhou (aborta o plano)
        """
        validate_plan(plan)
        self._used_urls = set()

        descriptors = []
        for info in sorted(plan.chapters, key=lambda c: c.order):
            if isinstance(assignments, AssignmentOutcome):
                urls = assignments.urls_for(info.id)
            elif assignments:
                urls = assignments.get(info.id, [])
            else:
                urls = []
            try:
                descriptors.append(await self.assemble(info, urls))
            except AssemblyError:
                raise
            except StudioError as e:
                logger.error(f"Assembly aborted at chapter {info.id}: {e}")
                raise AssemblyError(info.id, str(e)) from e
        return descriptors
