"""
Clientes de busca de imagens (Brave Image Search e Google Custom Search).
"""

import hashlib
import logging
from typing import List, Optional, Protocol

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from .errors import RetryableError, SearchError, classify_status
from ..models.assignment import ImageCandidate

logger = logging.getLogger(__name__)


class ImageSearchProvider(Protocol):
    name: str

    async def search(self, query: str, count: int = 20, safesearch: str = "moderate") -> List[ImageCandidate]:
        ...


def candidate_id(url: str) -> str:
    """Id estável derivado da URL."""
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


class _HttpSearchClient:
    """Base com cliente HTTP compartilhado e conversão de erros."""

    name = "http"

    def __init__(self, api_key: str, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente HTTP reutilizável."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Fecha o cliente HTTP."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, params: dict, headers: Optional[dict] = None) -> dict:
        client = await self._get_client()
        try:
            response = await client.get(url, params=params, headers=headers or {})
        except httpx.TimeoutException as e:
            raise RetryableError(f"{self.name} timeout: {e}")
        except httpx.HTTPError as e:
            raise RetryableError(f"{self.name} connection error: {e}")

        if response.status_code >= 400:
            raise classify_status(response.status_code, response.text[:200])
        try:
            return response.json()
        except ValueError as e:
            raise SearchError(f"{self.name} returned invalid JSON: {e}")


class BraveImageSearch(_HttpSearchClient):
    """
    Busca de imagens via Brave Search API.

    Features:
    - Retry automático com backoff exponencial (408/429/5xx)
    - Usa a URL original (properties.url) com fallback para a thumbnail
    """

    name = "brave"
    BASE_URL = "https://api.search.brave.com/res/v1/images/search"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RetryableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def search(self, query: str, count: int = 20, safesearch: str = "moderate") -> List[ImageCandidate]:
        """
        Busca imagens.

        Args:
            query: Texto da busca
            count: Quantidade de resultados (máx. 100)
            safesearch: off, moderate ou strict

        Returns:
            Lista de ImageCandidate com URL não vazia
        """
        if not self.api_key:
            raise SearchError("Brave API key not configured")

        data = await self._get_json(
            self.BASE_URL,
            params={
                "q": query,
                "count": min(max(count, 1), 100),
                "safesearch": safesearch,
                "search_lang": "en",
                "spellcheck": 1,
            },
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self.api_key,
            },
        )

        candidates = []
        for item in data.get("results", []):
            properties = item.get("properties") or {}
            thumbnail = (item.get("thumbnail") or {}).get("src")
            url = properties.get("url") or thumbnail or ""
            if not url:
                continue
            candidates.append(ImageCandidate(
                id=candidate_id(url),
                url=url,
                title=item.get("title") or "",
                source=item.get("url") or item.get("source") or "",
                width=properties.get("width") or None,
                height=properties.get("height") or None,
                thumbnail=thumbnail,
            ))

        logger.info(f"Brave returned {len(candidates)} images for '{query[:60]}'")
        return candidates


class GoogleImageSearch(_HttpSearchClient):
    """Busca de imagens via Google Custom Search (searchType=image)."""

    name = "google"
    BASE_URL = "https://www.googleapis.com/customsearch/v1"
    SAFE_LEVELS = {"off": "off", "moderate": "active", "strict": "active"}

    def __init__(self, api_key: str, search_engine_id: str, **kwargs):
        super().__init__(api_key, **kwargs)
        self.search_engine_id = search_engine_id

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RetryableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def search(self, query: str, count: int = 20, safesearch: str = "moderate") -> List[ImageCandidate]:
        if not self.api_key or not self.search_engine_id:
            raise SearchError("Google search not configured")

        candidates: List[ImageCandidate] = []
        # API devolve no máximo 10 por página
        start = 1
        while len(candidates) < count and start <= 91:
            data = await self._get_json(
                self.BASE_URL,
                params={
                    "key": self.api_key,
                    "cx": self.search_engine_id,
                    "q": query,
                    "searchType": "image",
                    "num": min(10, count - len(candidates)),
                    "start": start,
                    "safe": self.SAFE_LEVELS.get(safesearch, "active"),
                },
            )
            items = data.get("items", [])
            for item in items:
                url = item.get("link") or ""
                if not url:
                    continue
                image = item.get("image") or {}
                candidates.append(ImageCandidate(
                    id=candidate_id(url),
                    url=url,
                    title=item.get("title") or "",
                    source=image.get("contextLink") or item.get("displayLink") or "",
                    width=image.get("width") or None,
                    height=image.get("height") or None,
                    thumbnail=image.get("thumbnailLink"),
                ))
            if len(items) < 10:
                break
            start += 10

        logger.info(f"Google returned {len(candidates)} images for '{query[:60]}'")
        return candidates[:count]
