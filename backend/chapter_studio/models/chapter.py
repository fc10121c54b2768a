"""
Modelos de capítulos, assets e timeline.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any
from enum import Enum

# ids viram nomes de diretório e caminhos de objeto
SAFE_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$"


class ImagePosition(str, Enum):
    FULL = "full"
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class TextPosition(str, Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class AudioSource(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SILENCE = "silence"


class TimelineAction(str, Enum):
    FADE_IN = "fade-in"
    FADE_OUT = "fade-out"
    ZOOM = "zoom"
    SHOW_IMAGE = "show-image"
    SHOW_VIDEO = "show-video"
    SHOW_TEXT = "show-text"


class ChapterInfo(BaseModel):
    """Capítulo de narração vindo do gerador de roteiro."""
    model_config = ConfigDict(frozen=True)

    id: str
    order: int
    duration: float  # segundos
    narration: str
    keywords: List[str] = []
    visual_cues: List[str] = []


class ChapterPlan(BaseModel):
    """
    Plano completo de um vídeo.

    Criado uma vez por requisição de geração e imutável a partir daí.
    """
    model_config = ConfigDict(frozen=True)

    video_id: str
    title: str
    total_duration: float
    topic: Optional[str] = None
    description: Optional[str] = None
    chapters: List[ChapterInfo]


class ImageAsset(BaseModel):
    url: str  # http(s) ou data: URI
    alt: str = ""
    position: ImagePosition = ImagePosition.FULL


class AudioAsset(BaseModel):
    """Áudio de narração já codificado."""
    data: bytes
    format: str = "mp3"  # mp3, wav
    duration_seconds: float
    source: AudioSource = AudioSource.PRIMARY


class AssetBundle(BaseModel):
    images: List[ImageAsset] = []
    audio: AudioAsset
    background_video: Optional[str] = None


class TimelineEntry(BaseModel):
    """
    Instrução de renderização relativa ao início do capítulo.

    Entradas podem se sobrepor (ex: show-text cobre quase todo o capítulo
    enquanto zoom cobre só a janela de uma imagem).
    """
    timestamp: float
    action: TimelineAction
    data: Dict[str, Any] = {}
    duration: Optional[float] = None

    @property
    def end(self) -> float:
        return self.timestamp + (self.duration or 0.0)

    def is_active(self, t: float) -> bool:
        return self.timestamp <= t <= self.end


class ChapterDescriptor(BaseModel):
    """
    Tudo que o compositor precisa para renderizar um capítulo.

    Gerado pelo montador de capítulos e consumido uma única vez pelo
    renderizador.
    """
    id: str
    order: int
    duration: float
    text: str
    timeline: List[TimelineEntry]
    assets: AssetBundle
    degradations: List[str] = Field(default_factory=list)
    free: bool = True
