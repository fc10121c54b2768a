"""
Models package for the chapter studio.
"""

from .config import (
    ApiConfig,
    BraveConfig,
    GoogleSearchConfig,
    PexelsConfig,
    ElevenLabsConfig,
    OpenAISpeechConfig,
    GeminiConfig,
    RenderConfig,
    CacheConfig,
    AssignmentConfig,
    SchedulerConfig,
    StorageConfig,
    StorageProvider,
    Orientation,
    FullConfig,
)
from .chapter import (
    ChapterInfo,
    ChapterPlan,
    ImageAsset,
    ImagePosition,
    AudioAsset,
    AudioSource,
    AssetBundle,
    TimelineAction,
    TimelineEntry,
    TextPosition,
    ChapterDescriptor,
)
from .assignment import (
    ImageCandidate,
    ScoredImage,
    MatchStrength,
    ChapterPriority,
    PrioritizedChapter,
    AssignmentResult,
    AssignmentOutcome,
    AssignmentResponse,
    StructuredAssignment,
    MalformedAssignment,
    ModelChapterAssignment,
)
from .render import RenderProgress, RenderStatus, MediaBlob
from .records import (
    VideoRecord,
    VideoStatus,
    ChapterRecord,
    ChapterState,
    WaitOutcome,
    VideoStatusResponse,
)

__all__ = [
    # Config
    "ApiConfig",
    "BraveConfig",
    "GoogleSearchConfig",
    "PexelsConfig",
    "ElevenLabsConfig",
    "OpenAISpeechConfig",
    "GeminiConfig",
    "RenderConfig",
    "CacheConfig",
    "AssignmentConfig",
    "SchedulerConfig",
    "StorageConfig",
    "StorageProvider",
    "Orientation",
    "FullConfig",
    # Chapter
    "ChapterInfo",
    "ChapterPlan",
    "ImageAsset",
    "ImagePosition",
    "AudioAsset",
    "AudioSource",
    "AssetBundle",
    "TimelineAction",
    "TimelineEntry",
    "TextPosition",
    "ChapterDescriptor",
    # Assignment
    "ImageCandidate",
    "ScoredImage",
    "MatchStrength",
    "ChapterPriority",
    "PrioritizedChapter",
    "AssignmentResult",
    "AssignmentOutcome",
    "AssignmentResponse",
    "StructuredAssignment",
    "MalformedAssignment",
    "ModelChapterAssignment",
    # Render
    "RenderProgress",
    "RenderStatus",
    "MediaBlob",
    # Records
    "VideoRecord",
    "VideoStatus",
    "ChapterRecord",
    "ChapterState",
    "WaitOutcome",
    "VideoStatusResponse",
]
