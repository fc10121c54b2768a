"""
Modelos de progresso e saída de renderização.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class RenderStatus(str, Enum):
    RENDERING = "rendering"
    COMPLETE = "complete"
    FAILED = "failed"


class RenderProgress(BaseModel):
    """Evento transitório de progresso, nunca persistido."""
    chapter_id: str
    progress: float = Field(default=0.0, ge=0, le=100)
    status: RenderStatus = RenderStatus.RENDERING
    error: Optional[str] = None


class MediaBlob(BaseModel):
    """Arquivo de vídeo codificado de um capítulo."""
    path: str
    content_type: str = "video/mp4"
    size_bytes: int
    duration_seconds: float
    render_time_ms: int = 0

    def read_bytes(self) -> bytes:
        with open(self.path, "rb") as f:
            return f.read()
