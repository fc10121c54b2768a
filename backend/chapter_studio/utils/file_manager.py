"""
File management utilities for the chapter studio.
"""

import shutil
from pathlib import Path
import logging
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


class FileManager:
    """
    Manages working directories for chapter renders.

    Features:
    - Per-chapter temporary directories
    - Cleanup after each render and of stale leftovers
    """

    def __init__(
        self,
        base_path: str = "storage",
        temp_dir: str = "temp",
    ):
        self.base_path = Path(base_path)
        self.temp_dir = self.base_path / temp_dir
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def _inside(self, *names: str) -> Path:
        """Path under temp_dir for the given names; never resolves outside it."""
        path = self.temp_dir.joinpath(*(_safe(n) for n in names))
        if self.temp_dir.resolve() not in path.resolve().parents:
            raise ValueError(f"Temp path escapes {self.temp_dir}: {'/'.join(names)}")
        return path

    def chapter_dir(self, video_id: str, chapter_id: str) -> Path:
        """Get (and create) the working directory of one chapter."""
        path = self._inside(video_id, chapter_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def cleanup_chapter(self, video_id: str, chapter_id: str) -> None:
        """Remove temporary files of a chapter."""
        path = self._inside(video_id, chapter_id)
        if path.exists():
            try:
                shutil.rmtree(path)
                logger.debug(f"Cleaned up temp files for chapter: {video_id}/{chapter_id}")
            except OSError as e:
                logger.error(f"Failed to cleanup temp files for {video_id}/{chapter_id}: {e}")

    def cleanup_video(self, video_id: str) -> None:
        path = self._inside(video_id)
        if path.exists():
            try:
                shutil.rmtree(path)
                logger.info(f"Cleaned up temp files for video: {video_id}")
            except OSError as e:
                logger.error(f"Failed to cleanup temp files for video {video_id}: {e}")

    def cleanup_old_temp_files(self, max_age_hours: int = 24) -> int:
        """
        Remove temporary directories older than max_age_hours.

        Returns:
            Number of directories removed
        """
        cutoff = datetime.now() - timedelta(hours=max_age_hours)
        removed_count = 0

        for item in self.temp_dir.iterdir():
            if item.is_dir():
                try:
                    mtime = datetime.fromtimestamp(item.stat().st_mtime)
                    if mtime < cutoff:
                        shutil.rmtree(item)
                        removed_count += 1
                        logger.info(f"Removed old temp directory: {item}")
                except OSError as e:
                    logger.error(f"Failed to remove temp directory {item}: {e}")

        return removed_count


def _safe(name: str) -> str:
    cleaned = "".join(c if c.isalnum() or c in "-_." else "_" for c in name)
    # "", "." and ".." would point at temp_dir itself or its parent
    if not cleaned.strip("."):
        return "_" * max(1, len(cleaned))
    return cleaned
