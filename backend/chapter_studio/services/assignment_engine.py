"""
Atribuição heurística de imagens a capítulos.

Pipeline de cinco fases, cada uma chamável isoladamente:
busca ampla → filtro → scoring → distribuição → validação.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .errors import AssignmentValidationError, StudioError
from .image_search import ImageSearchProvider
from ..models.assignment import (
    ImageCandidate,
    ScoredImage,
    MatchStrength,
    ChapterPriority,
    PrioritizedChapter,
    AssignmentResult,
    AssignmentOutcome,
)
from ..models.chapter import ChapterInfo
from ..models.config import AssignmentConfig
from ..utils.keywords import extract_keywords, keywords_overlap
from ..utils.progress import ProgressChannel

logger = logging.getLogger(__name__)

PRIORITY_BONUS = {
    ChapterPriority.HIGH: 2,
    ChapterPriority.MEDIUM: 1,
    ChapterPriority.LOW: 0,
}

PRIORITY_CAPS = {
    ChapterPriority.HIGH: 2,
    ChapterPriority.MEDIUM: 2,
    ChapterPriority.LOW: 1,
}

STRONG_THRESHOLD = 2
LOOSE_PREFIX = 4


# ============== FASE 1: BUSCA AMPLA ==============


def chapter_keywords(chapter: ChapterInfo) -> List[str]:
    """Palavras-chave do capítulo: as explícitas primeiro, depois as da narração."""
    text = " ".join(list(chapter.keywords) + [chapter.narration])
    return extract_keywords(text)


def build_broad_query(topic: str, chapters: Sequence[ChapterInfo]) -> str:
    """Tema + até 2 palavras-chave de cada um dos 3 primeiros capítulos."""
    parts = [topic.strip()] if topic else []
    for chapter in list(chapters)[:3]:
        words = chapter_keywords(chapter)[:2]
        if words:
            parts.append(" ".join(words))
    return " ".join(p for p in parts if p).strip()


def candidate_count(chapter_count: int, config: AssignmentConfig) -> int:
    return max(1, min(config.candidate_multiplier * chapter_count, config.max_candidates))


# ============== FASE 2: FILTRO ==============


def dedupe_key(url: str) -> str:
    """Domínio (sem www.) + dois primeiros segmentos do caminho."""
    parsed = urlparse(url)
    domain = parsed.netloc.lower()
    if domain.startswith("www."):
        domain = domain[4:]
    segments = [s for s in parsed.path.split("/") if s][:2]
    return "/".join([domain] + segments)


def filter_candidates(candidates: Sequence[ImageCandidate], config: AssignmentConfig) -> List[ImageCandidate]:
    """Remove duplicatas, imagens pequenas e títulos vazios ou genéricos."""
    seen = set()
    unique = []
    for candidate in candidates:
        if not candidate.url:
            continue
        key = dedupe_key(candidate.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)

    sized = [
        c for c in unique
        if not (c.width is not None and c.width < config.min_dimension)
        and not (c.height is not None and c.height < config.min_dimension)
    ]

    blocklist = [term.lower() for term in config.blocklist]
    result = []
    for candidate in sized:
        title = (candidate.title or "").strip()
        if len(title) < config.min_title_length:
            continue
        lowered = title.lower()
        if any(term in lowered for term in blocklist):
            continue
        result.append(candidate)

    logger.info(
        f"Filter: {len(candidates)} in, {len(unique)} unique, "
        f"{len(sized)} sized, {len(result)} out"
    )
    return result


# ============== FASE 3: SCORING ==============


def classify_strength(overlap: int) -> MatchStrength:
    if overlap >= STRONG_THRESHOLD:
        return MatchStrength.STRONG
    if overlap == 1:
        return MatchStrength.MEDIUM
    return MatchStrength.WEAK


def score_candidates(
    candidates: Sequence[ImageCandidate],
    chapters: Sequence[PrioritizedChapter]
) -> List[ScoredImage]:
    """Classifica cada imagem pelo melhor overlap com algum capítulo."""
    scored = []
    for candidate in candidates:
        image_keywords = extract_keywords(candidate.title)
        best = 0
        for chapter in chapters:
            best = max(best, keywords_overlap(chapter.keywords, image_keywords))
        scored.append(ScoredImage(
            **candidate.model_dump(),
            match_strength=classify_strength(best),
            keywords=image_keywords,
            best_overlap=best,
        ))
    return scored


# ============== FASE 4: DISTRIBUIÇÃO ==============


def chapter_priority(duration: float, average: float) -> ChapterPriority:
    ratio = duration / average if average > 0 else 1.0
    if ratio >= 1.2:
        return ChapterPriority.HIGH
    if ratio >= 0.8:
        return ChapterPriority.MEDIUM
    return ChapterPriority.LOW


def prioritize_chapters(chapters: Sequence[ChapterInfo]) -> List[PrioritizedChapter]:
    if not chapters:
        return []
    average = sum(c.duration for c in chapters) / len(chapters)
    return [
        PrioritizedChapter(
            id=c.id,
            order=c.order,
            duration=c.duration,
            text=c.narration,
            priority=chapter_priority(c.duration, average),
            keywords=chapter_keywords(c),
        )
        for c in sorted(chapters, key=lambda c: c.order)
    ]


def chapter_cap(chapter: PrioritizedChapter, max_per_chapter: int = 2) -> int:
    return min(PRIORITY_CAPS[chapter.priority], max_per_chapter)


def loose_overlap(a: Sequence[str], b: Sequence[str]) -> int:
    """Overlap por substring ou prefixo comum de 4+ letras (economy/economic)."""
    count = 0
    for word in a:
        for other in b:
            if word in other or other in word or (
                len(word) >= LOOSE_PREFIX and len(other) >= LOOSE_PREFIX
                and word[:LOOSE_PREFIX] == other[:LOOSE_PREFIX]
            ):
                count += 1
                break
    return count


def find_best_chapter(
    image: ScoredImage,
    chapters: Sequence[PrioritizedChapter],
    assignments: Dict[str, List[str]],
    max_per_chapter: int = 2
) -> Optional[PrioritizedChapter]:
    """
    Capítulo abaixo do limite com maior overlap + bônus de prioridade.

    Empates ficam com o capítulo de menor ordem. Score zero nunca é escolhido.
    """
    best: Optional[PrioritizedChapter] = None
    best_score = 0
    for chapter in sorted(chapters, key=lambda c: c.order):
        if len(assignments[chapter.id]) >= chapter_cap(chapter, max_per_chapter):
            continue
        score = keywords_overlap(image.keywords, chapter.keywords) + PRIORITY_BONUS[chapter.priority]
        if score > best_score:
            best_score = score
            best = chapter
    return best


def distribute(
    images: Sequence[ScoredImage],
    chapters: Sequence[PrioritizedChapter],
    max_per_chapter: int = 2
) -> List[AssignmentResult]:
    """
    Distribui imagens: strong primeiro, depois medium.

    Weak só preenche capítulos high que ficaram vazios, e só quando existe
    algum overlap de palavras-chave.
    """
    assignments: Dict[str, List[str]] = {c.id: [] for c in chapters}
    used = set()

    for strength in (MatchStrength.STRONG, MatchStrength.MEDIUM):
        for image in images:
            if image.match_strength != strength or image.id in used:
                continue
            chapter = find_best_chapter(image, chapters, assignments, max_per_chapter)
            if chapter is None:
                continue
            assignments[chapter.id].append(image.id)
            used.add(image.id)

    for chapter in sorted(chapters, key=lambda c: c.order):
        if chapter.priority != ChapterPriority.HIGH or assignments[chapter.id]:
            continue
        for image in images:
            if image.match_strength != MatchStrength.WEAK or image.id in used:
                continue
            if loose_overlap(image.keywords, chapter.keywords) > 0:
                assignments[chapter.id].append(image.id)
                used.add(image.id)
                break

    return [
        AssignmentResult(chapter_id=c.id, image_ids=assignments[c.id])
        for c in sorted(chapters, key=lambda c: c.order)
    ]


# ============== FASE 5: VALIDAÇÃO ==============


def validate_assignments(
    results: Sequence[AssignmentResult],
    chapters: Sequence[PrioritizedChapter],
    images: Sequence[ScoredImage],
    max_per_chapter: int = 2
) -> List[str]:
    """
    Valida o resultado.

    Raises:
        AssignmentValidationError: capítulo acima do limite ou imagem repetida

    Returns:
        Avisos não fatais
    """
    by_id = {c.id: c for c in chapters}
    seen = set()
    for result in results:
        chapter = by_id.get(result.chapter_id)
        cap = chapter_cap(chapter, max_per_chapter) if chapter else max_per_chapter
        if len(result.image_ids) > cap:
            raise AssignmentValidationError(result.chapter_id, len(result.image_ids), cap)
        for image_id in result.image_ids:
            if image_id in seen:
                raise StudioError(f"Image {image_id} assigned to more than one chapter")
            seen.add(image_id)

    warnings = []
    assigned = {r.chapter_id: r.image_ids for r in results}
    for chapter in chapters:
        if chapter.priority == ChapterPriority.HIGH and not assigned.get(chapter.id):
            warnings.append(f"high priority chapter {chapter.id} has no images")

    strength = {i.id: i.match_strength for i in images}
    used_weak = sum(1 for i in seen if strength.get(i) == MatchStrength.WEAK)
    unused_strong = sum(1 for i in images if i.match_strength == MatchStrength.STRONG and i.id not in seen)
    if used_weak and unused_strong:
        warnings.append(f"{used_weak} weak images used while {unused_strong} strong images unused")

    for warning in warnings:
        logger.warning(f"Assignment: {warning}")
    return warnings


# ============== ENGINE ==============


class ImageAssignmentEngine:
    """
    Atribui imagens de uma única busca ampla aos capítulos de um vídeo.

    Features:
    - Uma busca por vídeo (não uma por capítulo)
    - Cada imagem vai para no máximo um capítulo
    - Limite por capítulo (2 high/medium, 1 low)
    - Progresso publicado por fase (20% cada)
    """

    PROGRESS_KEY = "assignment"

    def __init__(
        self,
        search: ImageSearchProvider,
        config: Optional[AssignmentConfig] = None,
        progress: Optional[ProgressChannel] = None,
        safesearch: str = "moderate"
    ):
        self.search = search
        self.config = config or AssignmentConfig()
        self.progress = progress or ProgressChannel("assignment")
        self.safesearch = safesearch

    async def _report(self, phase: int) -> None:
        await self.progress.report(self.PROGRESS_KEY, phase * 20)

    async def search_broad(self, topic: str, chapters: Sequence[ChapterInfo]) -> Tuple[str, List[ImageCandidate]]:
        query = build_broad_query(topic, chapters)
        count = candidate_count(len(chapters), self.config)
        logger.info(f"Broad image search: '{query}' ({count} results)")
        try:
            candidates = await self.search.search(query, count=count, safesearch=self.safesearch)
        except StudioError as e:
            logger.error(f"Broad image search failed: {e}")
            return query, []
        return query, list(candidates)

    async def run(self, topic: str, chapters: Sequence[ChapterInfo]) -> AssignmentOutcome:
        max_per_chapter = self.config.max_images_per_chapter
        prioritized = prioritize_chapters(chapters)

        _, candidates = await self.search_broad(topic, chapters)
        await self._report(1)
        if not candidates:
            logger.warning("No images found, every chapter gets an empty assignment")
            await self._report(5)
            return AssignmentOutcome(
                results=[AssignmentResult(chapter_id=c.id, image_ids=[]) for c in prioritized],
                chapters=prioritized,
                warnings=["no candidates"],
            )

        filtered = filter_candidates(candidates, self.config)
        if len(filtered) < 3:
            logger.warning(f"Only {len(filtered)} images left after filtering")
        await self._report(2)

        scored = score_candidates(filtered, prioritized)
        await self._report(3)

        results = distribute(scored, prioritized, max_per_chapter)
        await self._report(4)

        warnings = validate_assignments(results, prioritized, scored, max_per_chapter)
        await self._report(5)

        used = sum(len(r.image_ids) for r in results)
        logger.info(
            f"Assigned {used}/{len(scored)} images to "
            f"{sum(1 for r in results if r.image_ids)}/{len(results)} chapters"
        )
        return AssignmentOutcome(
            results=results,
            scored=scored,
            chapters=prioritized,
            candidates={c.id: c for c in filtered},
            strategy="heuristic",
            warnings=warnings,
        )

    async def assign(self, topic: str, chapters: Sequence[ChapterInfo]) -> List[AssignmentResult]:
        outcome = await self.run(topic, chapters)
        return outcome.results
