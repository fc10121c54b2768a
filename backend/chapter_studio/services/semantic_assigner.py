"""
Atribuição semântica de imagens usando Google Gemini.

Variante "global": uma busca para o vídeo inteiro, o modelo escolhe quais
imagens combinam com cada capítulo. Qualquer falha cai no round-robin.
"""

import json
import logging
import re
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import google.generativeai as genai
from pydantic import ValidationError

from .assignment_engine import build_broad_query, filter_candidates, prioritize_chapters
from .errors import StudioError
from .image_search import ImageSearchProvider
from ..models.assignment import (
    ImageCandidate,
    AssignmentResult,
    AssignmentOutcome,
    AssignmentResponse,
    StructuredAssignment,
    MalformedAssignment,
    ModelChapterAssignment,
)
from ..models.chapter import ChapterInfo
from ..models.config import AssignmentConfig
from ..utils.progress import ProgressChannel

logger = logging.getLogger(__name__)

Completion = Callable[[str], Awaitable[str]]

ROUND_ROBIN_PER_CHAPTER = 2
GLOBAL_SEARCH_COUNT = 20


class GeminiAssignmentModel:
    """Cliente Gemini que responde o prompt de atribuição em JSON."""

    RESPONSE_SCHEMA = {
        "type": "object",
        "properties": {
            "assignments": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "chapterId": {"type": "string"},
                        "imageIndices": {"type": "array", "items": {"type": "integer"}},
                        "reasoning": {"type": "string"}
                    },
                    "required": ["chapterId", "imageIndices"]
                }
            }
        },
        "required": ["assignments"]
    }

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(
            model,
            generation_config=genai.GenerationConfig(
                response_mime_type="application/json",
                response_schema=self.RESPONSE_SCHEMA,
                temperature=0.3,
            )
        )
        self._model_name = model

    async def complete(self, prompt: str) -> str:
        response = await self.model.generate_content_async(prompt)
        return response.text

    async def test_connection(self) -> dict:
        """Testa conexão com a API."""
        try:
            test_model = genai.GenerativeModel(self._model_name)
            response = await test_model.generate_content_async("Say 'OK'")
            return {"connected": True, "response": response.text[:50]}
        except Exception as e:
            return {"connected": False, "error": str(e)}


def build_assignment_prompt(
    chapters: Sequence[ChapterInfo],
    images: Sequence[ImageCandidate],
    max_per_chapter: int = 3
) -> str:
    chapters_text = "\n\n".join(
        f"CHAPTER {i} (ID: {c.id}):\n{c.narration[:200]}..."
        for i, c in enumerate(chapters)
    )
    images_text = "\n".join(f"[{i}] {img.title}" for i, img in enumerate(images))

    return f"""Assign between 0 and {max_per_chapter} images to each chapter based on semantic relevance.

{chapters_text}

AVAILABLE IMAGES:
{images_text}

RULES:
1. Each chapter may receive 0 to {max_per_chapter} images
2. Each image may be used only ONCE
3. Prefer semantic relevance over exact word matches
4. If an image is not relevant to any chapter, do not use it

Answer with JSON in exactly this format:
{{
  "assignments": [
    {{
      "chapterId": "ch1",
      "imageIndices": [0, 3],
      "reasoning": "Short explanation of why these images fit"
    }}
  ]
}}"""


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```[a-zA-Z]*\s*", "", cleaned)
        cleaned = re.sub(r"\s*```$", "", cleaned)
    return cleaned.strip()


def parse_model_response(text: str) -> AssignmentResponse:
    """Converte a resposta crua do modelo em StructuredAssignment ou MalformedAssignment."""
    if not text or not text.strip():
        return MalformedAssignment(reason="empty response")

    try:
        data = json.loads(_strip_fences(text))
    except json.JSONDecodeError as e:
        return MalformedAssignment(reason=f"invalid JSON: {e}", raw=text[:500])

    if not isinstance(data, dict) or not isinstance(data.get("assignments"), list):
        return MalformedAssignment(reason="missing assignments list", raw=text[:500])

    assignments = []
    for item in data["assignments"]:
        if not isinstance(item, dict):
            return MalformedAssignment(reason="assignment is not an object", raw=text[:500])
        chapter_id = item.get("chapterId", item.get("chapter_id"))
        indices = item.get("imageIndices", item.get("image_indices", []))
        if chapter_id is None or not isinstance(indices, list):
            return MalformedAssignment(reason="assignment without chapterId or imageIndices", raw=text[:500])
        try:
            assignments.append(ModelChapterAssignment(
                chapter_id=str(chapter_id),
                image_indices=[int(i) for i in indices],
                reasoning=str(item.get("reasoning", "")),
            ))
        except (TypeError, ValueError, ValidationError) as e:
            return MalformedAssignment(reason=f"invalid assignment: {e}", raw=text[:500])

    return StructuredAssignment(assignments=assignments)


def apply_structured(
    response: StructuredAssignment,
    chapters: Sequence[ChapterInfo],
    images: Sequence[ImageCandidate],
    max_per_chapter: int = 3
) -> List[AssignmentResult]:
    """
    Aplica a resposta do modelo com as mesmas regras da heurística.

    Índices fora do intervalo ou já usados são ignorados, capítulos
    desconhecidos são descartados e todo capítulo aparece na saída.
    """
    known = {c.id for c in chapters}
    assigned: Dict[str, List[str]] = {c.id: [] for c in chapters}
    used = set()

    for item in response.assignments:
        if item.chapter_id not in known:
            logger.debug(f"Model referenced unknown chapter {item.chapter_id}")
            continue
        for index in item.image_indices:
            if len(assigned[item.chapter_id]) >= max_per_chapter:
                break
            if index < 0 or index >= len(images) or index in used:
                continue
            used.add(index)
            assigned[item.chapter_id].append(images[index].id)

    return [AssignmentResult(chapter_id=c.id, image_ids=assigned[c.id]) for c in chapters]


def round_robin(
    chapters: Sequence[ChapterInfo],
    images: Sequence[ImageCandidate],
    per_chapter: int = ROUND_ROBIN_PER_CHAPTER
) -> List[AssignmentResult]:
    """Distribuição determinística: N imagens por capítulo, consumidas em ordem."""
    results = []
    index = 0
    for chapter in chapters:
        ids = []
        while len(ids) < per_chapter and index < len(images):
            ids.append(images[index].id)
            index += 1
        results.append(AssignmentResult(chapter_id=chapter.id, image_ids=ids))
    return results


class SemanticImageAssigner:
    """
    Atribuição global assistida por modelo.

    Features:
    - Busca global única (primária) com busca secundária se sobrarem
      menos de 6 candidatas após o filtro
    - Resposta do modelo validada como variante tipada
    - Fallback round-robin em resposta malformada, erro de rede ou falta
      de configuração
    """

    PROGRESS_KEY = "assignment"

    def __init__(
        self,
        search: ImageSearchProvider,
        completion: Optional[Completion] = None,
        secondary_search: Optional[ImageSearchProvider] = None,
        config: Optional[AssignmentConfig] = None,
        progress: Optional[ProgressChannel] = None,
        safesearch: str = "moderate"
    ):
        self.search = search
        self.secondary_search = secondary_search
        self.completion = completion
        self.config = config or AssignmentConfig()
        self.progress = progress or ProgressChannel("assignment")
        self.safesearch = safesearch

    @property
    def max_per_chapter(self) -> int:
        return self.config.global_max_images_per_chapter

    async def _search(self, provider: ImageSearchProvider, query: str) -> List[ImageCandidate]:
        try:
            return list(await provider.search(query, count=GLOBAL_SEARCH_COUNT, safesearch=self.safesearch))
        except StudioError as e:
            logger.error(f"Global image search ({getattr(provider, 'name', 'search')}) failed: {e}")
            return []

    async def search_global(self, topic: str, chapters: Sequence[ChapterInfo]) -> List[ImageCandidate]:
        query = build_broad_query(topic, chapters)
        candidates = filter_candidates(await self._search(self.search, query), self.config)

        if len(candidates) < self.config.secondary_search_threshold and self.secondary_search is not None:
            logger.info(f"Only {len(candidates)} candidates, querying secondary search")
            extra = await self._search(self.secondary_search, query)
            candidates = filter_candidates(candidates + extra, self.config)

        logger.info(f"Global search produced {len(candidates)} candidates")
        return candidates

    async def ask_model(
        self,
        chapters: Sequence[ChapterInfo],
        images: Sequence[ImageCandidate]
    ) -> AssignmentResponse:
        if self.completion is None:
            return MalformedAssignment(reason="model not configured")
        prompt = build_assignment_prompt(chapters, images, self.max_per_chapter)
        try:
            text = await self.completion(prompt)
        except Exception as e:
            logger.error(f"Semantic assignment model call failed: {e}")
            return MalformedAssignment(reason=f"model error: {e}")
        return parse_model_response(text)

    async def run(self, topic: str, chapters: Sequence[ChapterInfo]) -> AssignmentOutcome:
        ordered = sorted(chapters, key=lambda c: c.order)
        images = await self.search_global(topic, ordered)
        await self.progress.report(self.PROGRESS_KEY, 40)

        if not images:
            await self.progress.report(self.PROGRESS_KEY, 100)
            return AssignmentOutcome(
                results=[AssignmentResult(chapter_id=c.id) for c in ordered],
                chapters=prioritize_chapters(ordered),
                strategy="semantic",
                warnings=["no candidates"],
            )

        response = await self.ask_model(ordered, images)
        await self.progress.report(self.PROGRESS_KEY, 80)

        warnings = []
        if isinstance(response, StructuredAssignment):
            results = apply_structured(response, ordered, images, self.max_per_chapter)
            strategy = "semantic"
        else:
            logger.warning(f"Semantic assignment unusable ({response.reason}), using round-robin")
            warnings.append(f"model fallback: {response.reason}")
            results = round_robin(ordered, images, min(ROUND_ROBIN_PER_CHAPTER, self.max_per_chapter))
            strategy = "round_robin"

        await self.progress.report(self.PROGRESS_KEY, 100)
        return AssignmentOutcome(
            results=results,
            chapters=prioritize_chapters(ordered),
            candidates={img.id: img for img in images},
            strategy=strategy,
            warnings=warnings,
        )

    async def assign(self, topic: str, chapters: Sequence[ChapterInfo]) -> List[AssignmentResult]:
        outcome = await self.run(topic, chapters)
        return outcome.results
