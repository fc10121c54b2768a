"""
Hierarquia de erros do pipeline.
"""

from typing import Optional


class StudioError(Exception):
    """Erro base do pipeline de capítulos."""
    pass


class RetryableError(StudioError):
    """Erro que pode ser retentado (timeout, 429, 5xx)."""
    pass


class NonRetryableError(StudioError):
    """Erro que não deve ser retentado (ex: API key inválida)."""
    pass


class PlanValidationError(StudioError):
    """Plano inválido. Aborta o vídeo inteiro."""
    pass


class AssignmentValidationError(StudioError):
    """Capítulo recebeu mais imagens que o limite."""

    def __init__(self, chapter_id: str, count: int, cap: int):
        self.chapter_id = chapter_id
        self.count = count
        self.cap = cap
        super().__init__(f"Chapter {chapter_id} has {count} images (cap {cap})")


class ChapterRenderError(StudioError):
    """Falha fatal na renderização de um capítulo."""

    def __init__(self, message: str, chapter_id: Optional[str] = None):
        self.message = message
        self.chapter_id = chapter_id
        super().__init__(f"Chapter {chapter_id}: {message}" if chapter_id else message)


class InvalidDescriptorError(ChapterRenderError):
    """Timeline ou assets inconsistentes."""
    pass


class EncoderError(ChapterRenderError):
    """Falha ao iniciar ou finalizar o encoder."""
    pass


class UploadError(StudioError):
    pass


class SynthesisError(StudioError):
    """Falha de um provedor de TTS."""

    def __init__(self, message: str, provider: str = "", status_code: int = 0):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        detail = f"{provider}: {message}" if provider else message
        super().__init__(f"{detail} (HTTP {status_code})" if status_code else detail)


class SearchError(StudioError):
    pass


# Status HTTP que valem retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def classify_status(status_code: int, message: str) -> StudioError:
    """Converte status HTTP em RetryableError ou NonRetryableError."""
    if status_code in RETRYABLE_STATUS_CODES:
        return RetryableError(f"HTTP {status_code}: {message}")
    if status_code == 401:
        return NonRetryableError("API key inválida ou expirada")
    if status_code == 403:
        return NonRetryableError("Sem permissão ou créditos esgotados")
    return NonRetryableError(f"HTTP {status_code}: {message}")


class AssetFetchError(StudioError):
    """Falha ao baixar um asset remoto."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Failed to fetch {url[:120]}: {message}")


class AssemblyError(StudioError):
    """Falha ao montar um capítulo. Aborta o plano inteiro."""

    def __init__(self, chapter_id: str, message: str):
        self.chapter_id = chapter_id
        super().__init__(f"Chapter {chapter_id} could not be assembled: {message}")
