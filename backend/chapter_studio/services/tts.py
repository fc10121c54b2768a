"""
Síntese de narração com fallback: ElevenLabs → OpenAI → silêncio.
"""

import asyncio
import io
import logging
from typing import List, Optional, Protocol, Tuple

import httpx
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from .errors import SynthesisError, RETRYABLE_STATUS_CODES
from ..models.chapter import AudioAsset, AudioSource

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 150
PAUSE_FACTOR = 1.1  # pausas naturais


class SpeechSynthesizer(Protocol):
    name: str

    async def synthesize(self, text: str, voice: Optional[str] = None) -> AudioAsset:
        ...


def estimate_speech_duration(text: str, speed: float = 1.0) -> float:
    """Duração estimada da fala: ~150 palavras por minuto, +10%, mínimo 1s."""
    words = len(text.split())
    minutes = words / (WORDS_PER_MINUTE * max(speed, 0.1))
    return max(1.0, minutes * 60 * PAUSE_FACTOR)


def measure_duration(data: bytes, fmt: str) -> Optional[float]:
    """Duração real do áudio em segundos, ou None se não for possível decodificar."""
    try:
        segment = AudioSegment.from_file(io.BytesIO(data), format=fmt)
    except (CouldntDecodeError, OSError, IndexError) as e:
        logger.debug(f"Could not measure audio duration: {e}")
        return None
    return len(segment) / 1000.0


def silent_audio(duration_seconds: float, frame_rate: int = 44100) -> AudioAsset:
    """Gera WAV silencioso com a duração pedida."""
    segment = AudioSegment.silent(duration=int(duration_seconds * 1000), frame_rate=frame_rate)
    buffer = io.BytesIO()
    segment.export(buffer, format="wav")
    return AudioAsset(
        data=buffer.getvalue(),
        format="wav",
        duration_seconds=duration_seconds,
        source=AudioSource.SILENCE,
    )


class _HttpSynthesizer:
    """Base com cliente HTTP e retry manual por status code."""

    name = "tts"
    source = AudioSource.PRIMARY

    def __init__(
        self,
        api_key: str,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente HTTP reutilizável."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=30, read=120, write=30, pool=60),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Fecha o cliente HTTP."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post_with_retry(self, url: str, headers: dict, payload: dict) -> bytes:
        """POST com retry manual para melhor controle de erros."""
        if not self.api_key:
            raise SynthesisError("API key não configurada", self.name)

        client = await self._get_client()
        last_error: Optional[SynthesisError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.post(url, headers=headers, json=payload)
            except httpx.TimeoutException:
                last_error = SynthesisError("Timeout", self.name)
            except httpx.HTTPError as e:
                last_error = SynthesisError(f"Erro de conexão: {e}", self.name)
            else:
                if response.status_code < 400:
                    return response.content

                status_code = response.status_code
                error_msg = response.text[:200]
                if status_code not in RETRYABLE_STATUS_CODES:
                    if status_code == 401:
                        raise SynthesisError("API key inválida ou expirada", self.name, status_code)
                    if status_code == 403:
                        raise SynthesisError("Sem permissão ou créditos esgotados", self.name, status_code)
                    raise SynthesisError(error_msg or f"HTTP {status_code}", self.name, status_code)
                last_error = SynthesisError(error_msg, self.name, status_code)

            if attempt < self.max_attempts:
                wait_time = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(f"{self.name} attempt {attempt} failed ({last_error}), retrying in {wait_time}s")
                await asyncio.sleep(wait_time)

        raise last_error or SynthesisError("Falha após todas as tentativas", self.name)

    def _to_asset(self, data: bytes, text: str, fmt: str = "mp3", speed: float = 1.0) -> AudioAsset:
        duration = measure_duration(data, fmt) or estimate_speech_duration(text, speed)
        return AudioAsset(data=data, format=fmt, duration_seconds=duration, source=self.source)


class ElevenLabsSynthesizer(_HttpSynthesizer):
    """Gera narração usando a API do ElevenLabs."""

    name = "elevenlabs"
    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(self, api_key: str, voice_id: str, model_id: str = "eleven_multilingual_v2", **kwargs):
        super().__init__(api_key, **kwargs)
        self.voice_id = voice_id
        self.model_id = model_id

    async def synthesize(self, text: str, voice: Optional[str] = None) -> AudioAsset:
        data = await self._post_with_retry(
            f"{self.BASE_URL}/text-to-speech/{voice or self.voice_id}",
            headers={
                "xi-api-key": self.api_key,
                "Content-Type": "application/json",
                "Accept": "audio/mpeg",
            },
            payload={
                "text": text,
                "model_id": self.model_id,
                "voice_settings": {
                    "stability": 0.5,
                    "similarity_boost": 0.75
                }
            },
        )
        logger.info(f"ElevenLabs generated {len(data)} bytes ({len(text)} chars)")
        return self._to_asset(data, text)


class OpenAISpeechSynthesizer(_HttpSynthesizer):
    """Gera narração usando o endpoint /audio/speech da OpenAI."""

    name = "openai"
    source = AudioSource.SECONDARY
    BASE_URL = "https://api.openai.com/v1"

    def __init__(self, api_key: str, model: str = "tts-1", voice: str = "nova", speed: float = 1.0, **kwargs):
        super().__init__(api_key, **kwargs)
        self.model = model
        self.voice = voice
        self.speed = speed

    async def synthesize(self, text: str, voice: Optional[str] = None) -> AudioAsset:
        data = await self._post_with_retry(
            f"{self.BASE_URL}/audio/speech",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            payload={
                "model": self.model,
                "voice": voice or self.voice,
                "input": text,
                "speed": self.speed,
                "response_format": "mp3",
            },
        )
        logger.info(f"OpenAI TTS generated {len(data)} bytes ({len(text)} chars)")
        return self._to_asset(data, text, speed=self.speed)


class NarrationService:
    """
    Produz o áudio de um capítulo, nunca ausente.

    Ordem: provedor primário, secundário e, por fim, silêncio do tamanho
    da fala estimada. Cada fallback é logado e registrado como degradação.
    """

    def __init__(
        self,
        primary: Optional[SpeechSynthesizer] = None,
        secondary: Optional[SpeechSynthesizer] = None,
        speed: float = 1.0
    ):
        self.providers: List[Tuple[str, SpeechSynthesizer]] = []
        if primary is not None:
            self.providers.append(("primary", primary))
        if secondary is not None:
            self.providers.append(("secondary", secondary))
        self.speed = speed

    async def narrate(self, text: str, voice: Optional[str] = None) -> Tuple[AudioAsset, List[str]]:
        """
        Returns:
            (AudioAsset, lista de degradações)
        """
        degradations: List[str] = []
        for label, provider in self.providers:
            try:
                return await provider.synthesize(text, voice), degradations
            except SynthesisError as e:
                logger.warning(f"{label} TTS failed: {e}")
                degradations.append(f"tts_{label}_failed")
            except httpx.HTTPError as e:
                logger.warning(f"{label} TTS failed: {e}")
                degradations.append(f"tts_{label}_failed")

        if not self.providers:
            degradations.append("tts_not_configured")
        duration = estimate_speech_duration(text, self.speed)
        logger.warning(f"Using {duration:.1f}s of silence for narration")
        degradations.append("tts_silence")
        return silent_audio(duration), degradations

    async def close(self):
        for _, provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
