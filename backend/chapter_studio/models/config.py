"""
Modelos de configuração do sistema.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum


# ============== ENUMS ==============


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    SQUARE = "square"


class StorageProvider(str, Enum):
    LOCAL = "local"
    SUPABASE = "supabase"


# ============== API CONFIGS ==============


class ApiConfigItem(BaseModel):
    api_key: str = ""
    enabled: bool = True

    @property
    def usable(self) -> bool:
        return self.enabled and bool(self.api_key)


class BraveConfig(ApiConfigItem):
    safesearch: str = "moderate"


class GoogleSearchConfig(ApiConfigItem):
    search_engine_id: str = ""


class PexelsConfig(ApiConfigItem):
    per_page: int = 3


class ElevenLabsConfig(ApiConfigItem):
    voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    model_id: str = "eleven_multilingual_v2"


class OpenAISpeechConfig(ApiConfigItem):
    model: str = "tts-1"
    voice: str = "nova"
    speed: float = Field(default=1.0, ge=0.25, le=4.0)


class GeminiConfig(ApiConfigItem):
    model: str = "gemini-2.0-flash"


class ApiConfig(BaseModel):
    brave: BraveConfig = BraveConfig()
    google: GoogleSearchConfig = GoogleSearchConfig()
    pexels: PexelsConfig = PexelsConfig()
    elevenlabs: ElevenLabsConfig = ElevenLabsConfig()
    openai: OpenAISpeechConfig = OpenAISpeechConfig()
    gemini: GeminiConfig = GeminiConfig()


# ============== RENDER CONFIGS ==============


class Resolution(BaseModel):
    width: int = 720
    height: int = 1280
    preset: Optional[str] = "720p_portrait"

    @property
    def orientation(self) -> Orientation:
        if self.height > self.width:
            return Orientation.PORTRAIT
        if self.width > self.height:
            return Orientation.LANDSCAPE
        return Orientation.SQUARE


class TextOverlayConfig(BaseModel):
    font_path: Optional[str] = None  # None = fonte padrão do Pillow
    font_size: int = Field(default=32, ge=8, le=200)
    line_height: int = 40
    side_margin: int = 50
    edge_offset: int = 100  # distância do topo/base
    color: str = "#FFFFFF"
    outline_color: str = "#000000"
    outline_width: int = 2
    shadow_offset: int = 2


class RenderConfig(BaseModel):
    resolution: Resolution = Resolution()
    fps: int = Field(default=30, ge=1, le=60)
    crf: int = Field(default=23, ge=18, le=32)
    preset: str = "veryfast"
    audio_bitrate: int = 128
    background_color: str = "#000000"
    text: TextOverlayConfig = TextOverlayConfig()
    progress_every_frames: int = Field(default=10, ge=1)
    realtime_pacing: bool = False  # True = espera 1/fps entre frames
    ffmpeg_path: str = "ffmpeg"
    min_images_per_chapter: int = Field(default=1, ge=1, le=3)


# ============== PIPELINE CONFIGS ==============


class CacheConfig(BaseModel):
    max_size_mb: float = Field(default=100, gt=0)
    max_age_minutes: float = Field(default=30, gt=0)
    fetch_timeout: float = 30.0


class AssignmentConfig(BaseModel):
    use_model: bool = True  # usa Gemini quando configurado
    max_candidates: int = Field(default=50, ge=1, le=100)
    candidate_multiplier: int = 3
    min_dimension: int = 400
    min_title_length: int = 4
    max_images_per_chapter: int = Field(default=2, ge=1, le=5)
    global_max_images_per_chapter: int = Field(default=3, ge=1, le=5)
    secondary_search_threshold: int = 6
    blocklist: List[str] = [
        "abstract background",
        "logo",
        "icon",
        "template",
        "mockup",
        "blank",
        "placeholder",
        "stock photo",
        "watermark",
    ]


class SchedulerConfig(BaseModel):
    cooldown_seconds: float = Field(default=0.5, ge=0)
    wait_timeout_seconds: float = Field(default=90.0, gt=0)
    poll_interval_seconds: float = Field(default=0.5, gt=0)


class StorageConfig(BaseModel):
    provider: StorageProvider = StorageProvider.LOCAL
    local_dir: str = "storage/outputs"
    public_base_url: str = "/outputs"
    supabase_url: str = ""
    supabase_key: str = ""
    bucket: str = "video-chapters"
    metadata_dir: str = "storage/metadata"


# ============== FULL CONFIG ==============


class FullConfig(BaseModel):
    api: ApiConfig = ApiConfig()
    render: RenderConfig = RenderConfig()
    cache: CacheConfig = CacheConfig()
    assignment: AssignmentConfig = AssignmentConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    storage: StorageConfig = StorageConfig()
    log_level: str = "INFO"
    log_file: Optional[str] = None
