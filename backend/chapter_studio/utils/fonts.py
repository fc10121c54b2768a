"""
Font loading helpers for Pillow drawing.
"""

import logging
from functools import lru_cache
from typing import Optional

from PIL import ImageFont

logger = logging.getLogger(__name__)

BOLD_FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/Library/Fonts/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
]


@lru_cache(maxsize=32)
def load_font(size: int, font_path: Optional[str] = None):
    """Load a bold TrueType font, falling back to Pillow's default font."""
    candidates = [font_path] if font_path else []
    candidates += BOLD_FONT_CANDIDATES
    for path in candidates:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    logger.debug("No TrueType font found, using Pillow default font")
    return ImageFont.load_default(size=size)
