"""
Router para configurações do sistema.
"""

from fastapi import APIRouter
from pydantic import BaseModel
from typing import Optional, Literal

from ..models.config import (
    FullConfig,
    ApiConfig,
    RenderConfig,
    AssignmentConfig,
    SchedulerConfig,
    StorageConfig,
)
from ..services.errors import StudioError
from ..services.image_search import BraveImageSearch
from ..services.semantic_assigner import GeminiAssignmentModel
from ..services.video_search import PexelsVideoSearch
from ..utils.config_file import get_config, save_config

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("", response_model=FullConfig)
async def get_configuration():
    """
    Retorna configurações atuais.
    """
    return get_config()


@router.put("", response_model=FullConfig)
async def update_configuration(config: FullConfig):
    """
    Atualiza configurações. Vale para os próximos vídeos.
    """
    save_config(config)
    return config


@router.patch("/api", response_model=ApiConfig)
async def update_api_config(api_config: ApiConfig):
    config = get_config()
    config.api = api_config
    save_config(config)
    return config.api


@router.patch("/render", response_model=RenderConfig)
async def update_render_config(render_config: RenderConfig):
    config = get_config()
    config.render = render_config
    save_config(config)
    return config.render


@router.patch("/assignment", response_model=AssignmentConfig)
async def update_assignment_config(assignment_config: AssignmentConfig):
    config = get_config()
    config.assignment = assignment_config
    save_config(config)
    return config.assignment


@router.patch("/scheduler", response_model=SchedulerConfig)
async def update_scheduler_config(scheduler_config: SchedulerConfig):
    config = get_config()
    config.scheduler = scheduler_config
    save_config(config)
    return config.scheduler


@router.patch("/storage", response_model=StorageConfig)
async def update_storage_config(storage_config: StorageConfig):
    config = get_config()
    config.storage = storage_config
    save_config(config)
    return config.storage


class TestApiRequest(BaseModel):
    api: Literal["brave", "pexels", "gemini"]


class TestApiResponse(BaseModel):
    connected: bool
    error: Optional[str] = None
    details: Optional[dict] = None


@router.post("/test-api", response_model=TestApiResponse)
async def test_api_connection(request: TestApiRequest):
    """
    Testa conexão com uma API específica.
    """
    config = get_config()

    if request.api == "brave":
        if not config.api.brave.api_key:
            return TestApiResponse(connected=False, error="API key não configurada")
        client = BraveImageSearch(config.api.brave.api_key)
        try:
            results = await client.search("nature", count=1)
            return TestApiResponse(connected=True, details={"results": len(results)})
        except StudioError as e:
            return TestApiResponse(connected=False, error=str(e))
        finally:
            await client.close()

    elif request.api == "pexels":
        if not config.api.pexels.api_key:
            return TestApiResponse(connected=False, error="API key não configurada")
        client = PexelsVideoSearch(config.api.pexels.api_key)
        try:
            videos = await client.search_videos("nature", per_page=1)
            return TestApiResponse(connected=True, details={"results": len(videos)})
        except StudioError as e:
            return TestApiResponse(connected=False, error=str(e))
        finally:
            await client.close()

    if not config.api.gemini.api_key:
        return TestApiResponse(connected=False, error="API key não configurada")
    model = GeminiAssignmentModel(config.api.gemini.api_key, config.api.gemini.model)
    result = await model.test_connection()
    return TestApiResponse(
        connected=result.get("connected", False),
        error=result.get("error"),
        details=result,
    )
