"""
Router para geração e reprodução de vídeos em capítulos.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..models.chapter import SAFE_ID_PATTERN, ChapterInfo, ChapterPlan
from ..models.records import ChapterState, VideoStatus, VideoStatusResponse, WaitOutcome
from ..services.errors import PlanValidationError, StudioError
from ..services.video_orchestrator import VideoOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])

WAIT_STATUS_CODES = {
    WaitOutcome.READY: 200,
    WaitOutcome.TIMED_OUT: 202,
    WaitOutcome.FAILED: 409,
}


def get_orchestrator(request: Request) -> VideoOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orquestrador não inicializado")
    return orchestrator


class CreateVideoRequest(BaseModel):
    title: str
    chapters: List[ChapterInfo]
    topic: Optional[str] = None
    description: Optional[str] = None
    video_id: Optional[str] = Field(default=None, pattern=SAFE_ID_PATTERN)
    total_duration: Optional[float] = None
    owner: Optional[str] = None


class CreateVideoResponse(BaseModel):
    video_id: str
    status: str
    message: str
    chapter_count: int


class ChapterStatusResponse(BaseModel):
    video_id: str
    chapter_id: str
    state: ChapterState
    ready: bool
    url: Optional[str] = None
    error: Optional[str] = None
    degradations: List[str] = []


class WaitResponse(BaseModel):
    video_id: str
    chapter_id: str
    outcome: WaitOutcome
    url: Optional[str] = None


async def _run_pipeline(orchestrator: VideoOrchestrator, plan: ChapterPlan, owner: Optional[str]):
    """Background task: atribuição, montagem e renderização."""
    try:
        await orchestrator.run(plan, owner=owner)
    except StudioError as e:
        logger.error(f"Video {plan.video_id} failed: {e}")


@router.post("", response_model=CreateVideoResponse)
async def create_video(
    request: CreateVideoRequest,
    background_tasks: BackgroundTasks,
    orchestrator: VideoOrchestrator = Depends(get_orchestrator)
):
    """
    Inicia a geração de um vídeo a partir de um plano de capítulos.
    Retorna imediatamente com o video_id para acompanhamento.
    """
    video_id = request.video_id or str(uuid.uuid4())
    total_duration = request.total_duration
    if total_duration is None:
        total_duration = sum(c.duration for c in request.chapters)

    plan = ChapterPlan(
        video_id=video_id,
        title=request.title,
        total_duration=total_duration,
        topic=request.topic,
        description=request.description,
        chapters=request.chapters,
    )

    try:
        orchestrator.submit(plan)
    except PlanValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StudioError as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(_run_pipeline, orchestrator, plan, request.owner)

    return CreateVideoResponse(
        video_id=video_id,
        status=VideoStatus.PROCESSING.value,
        message="Geração de vídeo iniciada",
        chapter_count=len(plan.chapters),
    )


async def _video_status(orchestrator: VideoOrchestrator, video_id: str) -> VideoStatusResponse:
    status = await orchestrator.status(video_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Vídeo não encontrado")
    return status


@router.get("/{video_id}", response_model=VideoStatusResponse)
async def get_video(video_id: str, orchestrator: VideoOrchestrator = Depends(get_orchestrator)):
    """
    Retorna o vídeo com o estado de cada capítulo.
    """
    return await _video_status(orchestrator, video_id)


@router.get("/{video_id}/chapters/{chapter_id}", response_model=ChapterStatusResponse)
async def get_chapter(
    video_id: str,
    chapter_id: str,
    orchestrator: VideoOrchestrator = Depends(get_orchestrator)
):
    status = await _video_status(orchestrator, video_id)
    state = status.chapters.get(chapter_id)
    if state is None:
        if status.video.status != VideoStatus.FAILED:
            raise HTTPException(status_code=404, detail="Capítulo não encontrado")
        state = ChapterState.FAILED

    return ChapterStatusResponse(
        video_id=video_id,
        chapter_id=chapter_id,
        state=state,
        ready=state == ChapterState.READY,
        url=status.urls.get(chapter_id),
        error=status.errors.get(chapter_id) or orchestrator.failure(video_id),
        degradations=status.degradations.get(chapter_id, []),
    )


@router.get("/{video_id}/chapters/{chapter_id}/wait", response_model=WaitResponse)
async def wait_for_chapter(
    video_id: str,
    chapter_id: str,
    timeout: Optional[float] = Query(None, gt=0, le=300),
    orchestrator: VideoOrchestrator = Depends(get_orchestrator)
):
    """
    Espera o capítulo ficar pronto.

    200 = pronto, 202 = ainda não (mostrar buffering), 409 = falhou.
    """
    try:
        outcome = await orchestrator.wait_for_chapter(video_id, chapter_id, timeout)
    except StudioError as e:
        raise HTTPException(status_code=404, detail=str(e))

    status = await orchestrator.status(video_id)
    url = status.urls.get(chapter_id) if status else None

    body = WaitResponse(video_id=video_id, chapter_id=chapter_id, outcome=outcome, url=url)
    return JSONResponse(status_code=WAIT_STATUS_CODES[outcome], content=body.model_dump(mode="json"))
