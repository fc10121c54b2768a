"""
Utility modules for the chapter studio.
"""

from .logger import get_video_logger, setup_logging
from .file_manager import FileManager
from .clock import Clock, SystemClock
from .progress import ProgressChannel
from .keywords import extract_keywords, keywords_overlap

__all__ = [
    "get_video_logger",
    "setup_logging",
    "FileManager",
    "Clock",
    "SystemClock",
    "ProgressChannel",
    "extract_keywords",
    "keywords_overlap",
]
