"""
Logging utilities for the chapter studio.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        format_string: Custom format string for log messages
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=numeric_level,
        format=format_string,
        handlers=handlers,
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


class VideoLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with the video (and chapter) id."""

    def __init__(self, logger: logging.Logger, video_id: str, chapter_id: Optional[str] = None):
        super().__init__(logger, {"video_id": video_id, "chapter_id": chapter_id})

    def process(self, msg, kwargs):
        if self.extra.get("chapter_id"):
            return f"[Video {self.extra['video_id']}/{self.extra['chapter_id']}] {msg}", kwargs
        return f"[Video {self.extra['video_id']}] {msg}", kwargs


def get_video_logger(name: str, video_id: str, chapter_id: Optional[str] = None) -> VideoLoggerAdapter:
    """
    Get a logger instance with video context.

    Args:
        name: Logger name
        video_id: Video ID to include in log messages
        chapter_id: Optional chapter ID

    Returns:
        VideoLoggerAdapter with video context
    """
    logger = logging.getLogger(name)
    return VideoLoggerAdapter(logger, video_id, chapter_id)
