"""
Busca de vídeos de fundo no Pexels.
"""

import logging
from typing import List, Optional, Protocol

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from .errors import RetryableError, SearchError, classify_status
from ..models.config import Orientation
from ..utils.keywords import extract_keywords

logger = logging.getLogger(__name__)


class StockVideoProvider(Protocol):
    async def search_for_chapter(self, text: str, orientation: Orientation = Orientation.PORTRAIT) -> Optional[str]:
        ...


class PexelsVideoSearch:
    """
    Cliente da API de vídeos do Pexels.

    search_for_chapter extrai até 3 palavras-chave do texto e devolve o
    link do MP4 com largura mais próxima da desejada, ou None.
    """

    BASE_URL = "https://api.pexels.com/videos"

    def __init__(
        self,
        api_key: str,
        per_page: int = 3,
        preferred_width: int = 720,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.per_page = per_page
        self.preferred_width = preferred_width
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente HTTP reutilizável."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(15.0, connect=10.0),
                headers={"Authorization": self.api_key},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Fecha o cliente HTTP."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RetryableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def search_videos(
        self,
        query: str,
        orientation: Orientation = Orientation.PORTRAIT,
        per_page: Optional[int] = None,
        size: str = "medium"
    ) -> List[dict]:
        """Retorna a lista crua de vídeos do Pexels."""
        if not self.api_key:
            raise SearchError("Pexels API key not configured")

        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.BASE_URL}/search",
                params={
                    "query": query,
                    "per_page": per_page or self.per_page,
                    "orientation": Orientation(orientation).value,
                    "size": size,
                },
            )
        except httpx.HTTPError as e:
            raise RetryableError(f"Pexels connection error: {e}")

        if response.status_code >= 400:
            raise classify_status(response.status_code, response.text[:200])

        videos = response.json().get("videos", [])
        logger.info(f"Pexels returned {len(videos)} videos for '{query}'")
        return videos

    def best_video_file(self, video: dict, preferred_width: Optional[int] = None) -> Optional[str]:
        """Escolhe o arquivo MP4 com largura mais próxima da preferida."""
        files = video.get("video_files") or []
        if not files:
            return None

        target = preferred_width or self.preferred_width
        mp4_files = [f for f in files if f.get("file_type") == "video/mp4" and f.get("link")]
        if not mp4_files:
            return files[0].get("link")

        best = min(mp4_files, key=lambda f: abs((f.get("width") or 0) - target))
        return best["link"]

    async def search_for_chapter(
        self,
        text: str,
        orientation: Orientation = Orientation.PORTRAIT
    ) -> Optional[str]:
        """
        Busca um vídeo de fundo para o texto de um capítulo.

        Returns:
            URL do MP4 ou None se nada for encontrado
        """
        keywords = extract_keywords(text, max_keywords=3, min_length=4)
        if not keywords:
            logger.warning(f"No keywords extracted for stock video: '{text[:50]}'")
            return None

        query = " ".join(keywords)
        videos = await self.search_videos(query, orientation=orientation)
        if not videos:
            logger.warning(f"No stock videos found for '{query}'")
            return None

        url = self.best_video_file(videos[0])
        logger.info(f"Selected stock video {videos[0].get('id')} for '{query}'")
        return url
