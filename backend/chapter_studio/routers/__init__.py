"""
Routers package for the chapter studio API.
"""

from .config import router as config_router
from .videos import router as videos_router

__all__ = [
    "config_router",
    "videos_router",
]
