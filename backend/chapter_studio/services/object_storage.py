"""
Armazenamento dos capítulos renderizados (disco local ou Supabase Storage).
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from .errors import RetryableError, UploadError, RETRYABLE_STATUS_CODES

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        ...


def chapter_object_path(video_id: str, chapter_id: str, extension: str = "mp4") -> str:
    return f"{video_id}/{chapter_id}.{extension}"


class LocalObjectStorage:
    """
    Grava em disco, servido pelo mount estático /outputs.

    Upload é idempotente: o mesmo caminho sobrescreve o arquivo anterior.
    """

    def __init__(self, root_dir: str = "storage/outputs", public_base_url: str = "/outputs"):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _target(self, path: str) -> Path:
        target = (self.root_dir / path).resolve()
        if self.root_dir.resolve() not in target.parents:
            raise UploadError(f"Invalid object path: {path}")
        return target

    async def upload(self, path: str, data: bytes, content_type: str = "video/mp4") -> str:
        target = self._target(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + ".part")
            await asyncio.to_thread(tmp.write_bytes, data)
            tmp.replace(target)
        except OSError as e:
            raise UploadError(f"Failed to write {path}: {e}")
        logger.info(f"Stored {path} ({len(data) / 1024:.1f} KB)")
        return f"{self.public_base_url}/{path}"

    def exists(self, path: str) -> bool:
        return self._target(path).exists()


class SupabaseObjectStorage:
    """Upload para um bucket do Supabase Storage com x-upsert."""

    def __init__(
        self,
        url: str,
        key: str,
        bucket: str = "video-chapters",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.bucket = bucket
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente HTTP reutilizável."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=30, read=120, write=120, pool=60),
                headers={
                    "Authorization": f"Bearer {self.key}",
                    "apikey": self.key,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Fecha o cliente HTTP."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def public_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{path}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RetryableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def upload(self, path: str, data: bytes, content_type: str = "video/mp4") -> str:
        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.url}/storage/v1/object/{self.bucket}/{path}",
                content=data,
                headers={
                    "Content-Type": content_type,
                    "x-upsert": "true",
                    "cache-control": "3600",
                },
            )
        except httpx.HTTPError as e:
            raise RetryableError(f"Upload connection error: {e}")

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableError(f"Upload HTTP {response.status_code}")
        if response.status_code >= 400:
            raise UploadError(f"Upload failed HTTP {response.status_code}: {response.text[:200]}")

        logger.info(f"Uploaded {path} to bucket {self.bucket}")
        return self.public_url(path)
