"""
Registros persistidos de vídeos e capítulos.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, List
from datetime import datetime
from enum import Enum


class VideoStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class ChapterState(str, Enum):
    QUEUED = "queued"
    RENDERING = "rendering"
    UPLOADING = "uploading"
    READY = "ready"
    FAILED = "failed"


class WaitOutcome(str, Enum):
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class VideoRecord(BaseModel):
    id: str
    title: str
    query: Optional[str] = None
    chapter_count: int
    total_duration: float
    status: VideoStatus = VideoStatus.PROCESSING
    owner: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None


class ChapterRecord(BaseModel):
    """Linha da tabela chapters. Chave de upsert: (video_id, chapter_id)."""
    video_id: str
    chapter_id: str
    order_index: int
    duration: float
    storage_url: Optional[str] = None
    render_time: int = 0  # ms
    file_size: int = 0
    owner: Optional[str] = None
    status: ChapterState = ChapterState.READY
    error: Optional[str] = None
    free: bool = True


class VideoStatusResponse(BaseModel):
    """Visão do vídeo para o consumidor de reprodução."""
    video: VideoRecord
    chapters: Dict[str, ChapterState]
    urls: Dict[str, str] = {}
    stuck: bool = False
    failed_chapter: Optional[str] = None
    errors: Dict[str, str] = {}
    degradations: Dict[str, List[str]] = {}
