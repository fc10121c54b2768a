"""
Modelos da atribuição de imagens a capítulos.
"""

from pydantic import BaseModel
from typing import List, Optional, Dict, Literal, Union
from enum import Enum


class MatchStrength(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"


class ChapterPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ImageCandidate(BaseModel):
    """Imagem retornada por uma busca. Efêmera, nunca persistida."""
    id: str
    url: str
    title: str = ""
    source: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    thumbnail: Optional[str] = None


class ScoredImage(ImageCandidate):
    match_strength: MatchStrength = MatchStrength.WEAK
    keywords: List[str] = []
    best_overlap: int = 0


class PrioritizedChapter(BaseModel):
    id: str
    order: int
    duration: float
    text: str
    priority: ChapterPriority = ChapterPriority.MEDIUM
    keywords: List[str] = []


class AssignmentResult(BaseModel):
    chapter_id: str
    image_ids: List[str] = []


class AssignmentOutcome(BaseModel):
    """Resultado completo de uma passada de atribuição."""
    results: List[AssignmentResult]
    scored: List[ScoredImage] = []
    chapters: List[PrioritizedChapter] = []
    candidates: Dict[str, ImageCandidate] = {}
    strategy: str = "heuristic"
    warnings: List[str] = []

    def urls_for(self, chapter_id: str) -> List[str]:
        """URLs das imagens atribuídas a um capítulo, na ordem de atribuição."""
        for result in self.results:
            if result.chapter_id == chapter_id:
                return [
                    self.candidates[image_id].url
                    for image_id in result.image_ids
                    if image_id in self.candidates
                ]
        return []


# ============== RESPOSTA DO MODELO ==============


class ModelChapterAssignment(BaseModel):
    chapter_id: str
    image_indices: List[int] = []
    reasoning: str = ""


class StructuredAssignment(BaseModel):
    kind: Literal["structured"] = "structured"
    assignments: List[ModelChapterAssignment]


class MalformedAssignment(BaseModel):
    kind: Literal["malformed"] = "malformed"
    reason: str
    raw: str = ""


AssignmentResponse = Union[StructuredAssignment, MalformedAssignment]
