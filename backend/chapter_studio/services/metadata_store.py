"""
Registros de vídeos e capítulos em arquivos JSON.
"""

import asyncio
import json
from pathlib import Path
from datetime import datetime
from typing import List, Optional, Protocol
import logging

from ..models.records import ChapterRecord, VideoRecord, VideoStatus

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    async def create_video(self, video: VideoRecord) -> VideoRecord:
        ...

    async def update_video_status(self, video_id: str, status: VideoStatus) -> Optional[VideoRecord]:
        ...

    async def upsert_chapter(self, record: ChapterRecord) -> ChapterRecord:
        ...

    async def get_video(self, video_id: str) -> Optional[VideoRecord]:
        ...

    async def list_chapters(self, video_id: str) -> List[ChapterRecord]:
        ...


class JsonMetadataStore:
    """
    Tabelas ``videos`` e ``chapters`` persistidas em JSON.

    Capítulos são upsert pela chave (video_id, chapter_id).
    """

    def __init__(self, storage_dir: str = "storage/metadata"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self.videos_file = self.storage_dir / "videos.json"
        self.chapters_file = self.storage_dir / "chapters.json"
        self._lock = asyncio.Lock()

        self._ensure_files()

    def _ensure_files(self):
        """Cria arquivos de dados se não existirem."""
        for file_path in [self.videos_file, self.chapters_file]:
            if not file_path.exists():
                file_path.write_text("[]")

    def _read_json(self, file_path: Path) -> List[dict]:
        """Lê dados de um arquivo JSON."""
        try:
            return json.loads(file_path.read_text())
        except (json.JSONDecodeError, FileNotFoundError):
            return []

    def _write_json(self, file_path: Path, data: List[dict]):
        """Escreve dados em um arquivo JSON."""
        file_path.write_text(json.dumps(data, indent=2, default=str))

    # ============== VIDEOS ==============

    async def create_video(self, video: VideoRecord) -> VideoRecord:
        async with self._lock:
            videos = [v for v in self._read_json(self.videos_file) if v["id"] != video.id]
            videos.append(video.model_dump(mode="json"))
            self._write_json(self.videos_file, videos)
        logger.info(f"Created video record {video.id} ({video.chapter_count} chapters)")
        return video

    async def get_video(self, video_id: str) -> Optional[VideoRecord]:
        for v in self._read_json(self.videos_file):
            if v["id"] == video_id:
                return VideoRecord(**v)
        return None

    async def update_video_status(self, video_id: str, status: VideoStatus) -> Optional[VideoRecord]:
        async with self._lock:
            videos = self._read_json(self.videos_file)
            updated = None
            now = datetime.now()
            for v in videos:
                if v["id"] == video_id:
                    v["status"] = status.value
                    v["updated_at"] = now.isoformat()
                    if status == VideoStatus.READY:
                        v["completed_at"] = now.isoformat()
                    updated = VideoRecord(**v)
                    break
            if updated:
                self._write_json(self.videos_file, videos)
        return updated

    async def list_videos(self, owner: Optional[str] = None) -> List[VideoRecord]:
        videos = [VideoRecord(**v) for v in self._read_json(self.videos_file)]
        if owner:
            videos = [v for v in videos if v.owner == owner]
        return sorted(videos, key=lambda v: v.created_at, reverse=True)

    # ============== CHAPTERS ==============

    async def upsert_chapter(self, record: ChapterRecord) -> ChapterRecord:
        async with self._lock:
            chapters = [
                c for c in self._read_json(self.chapters_file)
                if not (c["video_id"] == record.video_id and c["chapter_id"] == record.chapter_id)
            ]
            chapters.append(record.model_dump(mode="json"))
            self._write_json(self.chapters_file, chapters)
        return record

    async def list_chapters(self, video_id: str) -> List[ChapterRecord]:
        chapters = [
            ChapterRecord(**c) for c in self._read_json(self.chapters_file)
            if c["video_id"] == video_id
        ]
        return sorted(chapters, key=lambda c: c.order_index)

    async def get_chapter(self, video_id: str, chapter_id: str) -> Optional[ChapterRecord]:
        for c in self._read_json(self.chapters_file):
            if c["video_id"] == video_id and c["chapter_id"] == chapter_id:
                return ChapterRecord(**c)
        return None
