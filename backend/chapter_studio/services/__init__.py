"""
Services package for the chapter studio.
"""

from .errors import (
    StudioError,
    RetryableError,
    NonRetryableError,
    PlanValidationError,
    AssignmentValidationError,
    AssemblyError,
    ChapterRenderError,
    InvalidDescriptorError,
    EncoderError,
    UploadError,
    SynthesisError,
    SearchError,
    AssetFetchError,
)
from .asset_cache import AssetCache
from .image_search import BraveImageSearch, GoogleImageSearch
from .video_search import PexelsVideoSearch
from .tts import ElevenLabsSynthesizer, OpenAISpeechSynthesizer, NarrationService
from .assignment_engine import ImageAssignmentEngine
from .semantic_assigner import SemanticImageAssigner, GeminiAssignmentModel
from .chapter_assembler import ChapterAssembler
from .chapter_compositor import ChapterCompositor
from .object_storage import LocalObjectStorage, SupabaseObjectStorage
from .metadata_store import JsonMetadataStore
from .background_scheduler import BackgroundScheduler
from .video_orchestrator import VideoOrchestrator, build_orchestrator

__all__ = [
    "StudioError",
    "RetryableError",
    "NonRetryableError",
    "PlanValidationError",
    "AssignmentValidationError",
    "AssemblyError",
    "ChapterRenderError",
    "InvalidDescriptorError",
    "EncoderError",
    "UploadError",
    "SynthesisError",
    "SearchError",
    "AssetFetchError",
    "AssetCache",
    "BraveImageSearch",
    "GoogleImageSearch",
    "PexelsVideoSearch",
    "ElevenLabsSynthesizer",
    "OpenAISpeechSynthesizer",
    "NarrationService",
    "ImageAssignmentEngine",
    "SemanticImageAssigner",
    "GeminiAssignmentModel",
    "ChapterAssembler",
    "ChapterCompositor",
    "LocalObjectStorage",
    "SupabaseObjectStorage",
    "JsonMetadataStore",
    "BackgroundScheduler",
    "VideoOrchestrator",
    "build_orchestrator",
]
