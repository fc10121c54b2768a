"""
Cache em memória de assets remotos (imagens, vídeos de fundo).
"""

import asyncio
import base64
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple
from urllib.parse import unquote_to_bytes

import httpx

from .errors import AssetFetchError
from ..utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[Tuple[bytes, str]]]


@dataclass
class CacheEntry:
    key: str
    payload: bytes
    size: int
    inserted_at: float
    kind: str = "other"  # image, video, other


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Decodifica um data: URI em (bytes, content_type)."""
    header, _, body = uri.partition(",")
    meta = header[5:]  # remove "data:"
    content_type = meta.split(";")[0] or "text/plain"
    if meta.endswith(";base64"):
        return base64.b64decode(body), content_type
    return unquote_to_bytes(body), content_type


def kind_for(content_type: str) -> str:
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    return "other"


class AssetCache:
    """
    Cache LRU limitado por bytes e por idade.

    Features:
    - Capacidade total em bytes (padrão 100MB), evicção do menos usado
    - Idade máxima (padrão 30 min): entrada velha é tratada como miss
    - Leituras sem lock; inserções e evicções sob um único asyncio.Lock
    - Downloads concorrentes da mesma URL compartilham a mesma requisição
    - data: URIs são decodificados localmente, sem rede
    """

    def __init__(
        self,
        max_size_bytes: int = 100 * 1024 * 1024,
        max_age_seconds: float = 30 * 60,
        fetcher: Optional[Fetcher] = None,
        clock: Optional[Clock] = None,
        timeout: float = 30.0
    ):
        self.max_size_bytes = int(max_size_bytes)
        self.max_age_seconds = max_age_seconds
        self.clock = clock or SystemClock()
        self.timeout = timeout
        self._fetcher = fetcher
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._size = 0
        self._lock = asyncio.Lock()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._client: Optional[httpx.AsyncClient] = None
        self.hits = 0
        self.misses = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente HTTP compartilhado com connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        """Fecha o cliente HTTP."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ============== LEITURA ==============

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return (self.clock.now() - entry.inserted_at) < self.max_age_seconds

    def peek(self, url: str) -> Optional[bytes]:
        """Leitura sem lock. Retorna None em miss ou entrada expirada."""
        entry = self._entries.get(url)
        if entry is None or not self._is_fresh(entry):
            return None
        self._entries.move_to_end(url)
        return entry.payload

    def __contains__(self, url: str) -> bool:
        return self.peek(url) is not None

    async def get(self, url: str) -> bytes:
        """
        Retorna o asset do cache ou baixa e armazena.

        Raises:
            AssetFetchError: se o download falhar
        """
        payload = self.peek(url)
        if payload is not None:
            self.hits += 1
            return payload

        self.misses += 1
        if url in self._entries:
            async with self._lock:
                self._remove(url)

        task = self._inflight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(url))
            self._inflight[url] = task
            task.add_done_callback(lambda _t, key=url: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _fetch_and_store(self, url: str) -> bytes:
        payload, content_type = await self._fetch(url)
        await self.set(url, payload, kind_for(content_type))
        return payload

    async def _fetch(self, url: str) -> Tuple[bytes, str]:
        if url.startswith("data:"):
            try:
                return decode_data_uri(url)
            except ValueError as e:
                raise AssetFetchError(url, f"invalid data URI: {e}")

        if self._fetcher is not None:
            try:
                return await self._fetcher(url)
            except AssetFetchError:
                raise
            except Exception as e:
                raise AssetFetchError(url, str(e))

        client = await self._get_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AssetFetchError(url, f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            raise AssetFetchError(url, str(e) or type(e).__name__)
        return response.content, response.headers.get("content-type", "application/octet-stream")

    # ============== ESCRITA ==============

    async def set(self, url: str, payload: bytes, kind: str = "other") -> bool:
        """
        Armazena um asset, evictando os menos usados até caber.

        Returns:
            False se o asset sozinho excede a capacidade (não é armazenado)
        """
        size = len(payload)
        if size > self.max_size_bytes:
            logger.debug(f"Asset too large to cache ({size} bytes): {url[:80]}")
            return False

        async with self._lock:
            if url in self._entries:
                self._remove(url)
            while self._entries and self._size + size > self.max_size_bytes:
                oldest_key = next(iter(self._entries))
                self._remove(oldest_key)
                logger.debug(f"Evicted from cache: {oldest_key[:80]}")
            self._entries[url] = CacheEntry(
                key=url,
                payload=payload,
                size=size,
                inserted_at=self.clock.now(),
                kind=kind,
            )
            self._size += size
        return True

    def _remove(self, url: str) -> None:
        entry = self._entries.pop(url, None)
        if entry is not None:
            self._size -= entry.size

    async def preload(self, urls: Iterable[str]) -> Dict[str, bool]:
        """
        Aquece o cache concorrentemente. Falhas são logadas, nunca propagadas.

        Returns:
            Dict url -> sucesso
        """
        unique = list(dict.fromkeys(u for u in urls if u))
        results = await asyncio.gather(*(self.get(u) for u in unique), return_exceptions=True)
        outcome = {}
        for url, result in zip(unique, results):
            if isinstance(result, BaseException):
                logger.warning(f"Preload failed for {url[:80]}: {result}")
                outcome[url] = False
            else:
                outcome[url] = True
        return outcome

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._size = 0

    async def purge_expired(self) -> int:
        """Remove entradas expiradas. Retorna quantas foram removidas."""
        async with self._lock:
            expired = [k for k, e in self._entries.items() if not self._is_fresh(e)]
            for key in expired:
                self._remove(key)
        return len(expired)

    @property
    def size_bytes(self) -> int:
        return self._size

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "size_bytes": self._size,
            "max_size_bytes": self.max_size_bytes,
            "utilization": round(self._size / self.max_size_bytes * 100, 2) if self.max_size_bytes else 0.0,
            "hits": self.hits,
            "misses": self.misses,
            "by_kind": {
                kind: sum(1 for e in self._entries.values() if e.kind == kind)
                for kind in ("image", "video", "other")
            },
        }
