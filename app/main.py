from __future__ import annotations

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from uuid import UUID

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.clients.groq import GroqClient
from app.clients.render import AvatarRenderClient
from app.clients.s3_storage import S3StorageClient
from app.config import Settings, get_settings
from app.events.publisher import JobEventPublisher
from app.media.assembler import MediaAssembler
from app.models.api import (
    AvatarListResponse,
    CandidateInterview,
    CandidateInterviewResponse,
    InterviewCreateRequest,
    InterviewCreateResponse,
    InterviewListResponse,
    InterviewStatusResponse,
    InterviewSummary,
    InterviewSummaryResponse,
    RecordingSubmissionRequest,
    RecordingSubmissionResponse,
)
from app.models.domain import InterviewInput, InterviewState
from app.queue.queue import LocalTaskQueue
from app.services.errors import JobNotFoundError
from app.services.interview_service import InterviewService
from app.services.pipeline import InterviewPipeline
from app.services.transcription import build_transcriber
from app.storage.repository import InterviewJobRepository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

log = logging.getLogger(__name__)

_repo = InterviewJobRepository()
_service: InterviewService | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    if _service is not None and _service.pipeline.events is not None:
        _service.pipeline.events.close()


app = FastAPI(lifespan=lifespan)


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "; ".join(parts) or "invalid request"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Interview creation and recording submission answer with the {success, error} envelope.
    path = request.url.path
    if request.method == "POST" and (path == "/interviews" or path.endswith("/recording")):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"success": False, "error": _describe_validation_error(exc)},
        )
    return await request_validation_exception_handler(request, exc)


def require_user_id(x_user_id: str = Header(default=None, alias="X-User-ID")) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-ID header required")
    return x_user_id


def build_interview_service(settings: Settings, repo: InterviewJobRepository) -> InterviewService:
    llm = GroqClient(
        api_key=settings.groq_api_key,
        model=settings.groq_model,
        base_url=settings.groq_base_url,
        timeout=settings.llm_timeout,
        resume_budget=settings.resume_char_budget,
        job_description_budget=settings.job_description_char_budget,
        question_count=settings.question_count,
    )
    render = AvatarRenderClient(
        api_key=settings.render_api_key,
        base_url=settings.render_base_url,
        timeout=settings.render_timeout,
    )
    assembler = MediaAssembler(
        ffmpeg=settings.ffmpeg_binary,
        ffprobe=settings.ffprobe_binary,
        timeout=settings.ffmpeg_timeout,
        width=settings.output_width,
        height=settings.output_height,
        fps=settings.output_fps,
        download_timeout=settings.download_timeout,
    )
    storage = S3StorageClient(
        bucket=settings.s3_bucket,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        endpoint_url=settings.s3_endpoint_url,
        region_name=settings.s3_region,
        public_url=settings.s3_public_url,
        addressing_style=settings.s3_addressing_style,
        memory_limit_bytes=settings.s3_memory_limit_bytes,
    )
    events: JobEventPublisher | None = None
    if settings.kafka_enabled and settings.kafka_updates_topic:
        try:
            events = JobEventPublisher(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                topic=settings.kafka_updates_topic,
            )
        except Exception:  # pragma: no cover - best effort logging
            log.warning("job event publisher unavailable", extra={"topic": settings.kafka_updates_topic}, exc_info=True)
    pipeline = InterviewPipeline(
        repo=repo,
        llm=llm,
        render=render,
        assembler=assembler,
        storage=storage,
        transcriber=build_transcriber(settings),
        settings=settings,
        events=events,
    )
    service = InterviewService(repo=repo, pipeline=pipeline, settings=settings)
    service.bind_queue(LocalTaskQueue(processor=pipeline.run))
    return service


def get_interview_service(settings: Settings = Depends(get_settings)) -> InterviewService:
    global _service
    if _service is None:
        _service = build_interview_service(settings, _repo)
    return _service


@app.post("/interviews", response_model=InterviewCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_interview(
    payload: InterviewCreateRequest,
    user_id: str = Depends(require_user_id),
    service: InterviewService = Depends(get_interview_service),
):
    job = await service.create_job(InterviewInput(**payload.model_dump()), creator_id=user_id)
    return InterviewCreateResponse(success=True, job_id=job.id)


@app.get("/interviews", response_model=InterviewListResponse)
def list_interviews(
    user_id: str = Depends(require_user_id),
    service: InterviewService = Depends(get_interview_service),
) -> InterviewListResponse:
    items = [InterviewStatusResponse.from_job(job) for job in service.list_jobs(user_id)]
    return InterviewListResponse(items=items)


@app.get("/interviews:validate", response_model=CandidateInterviewResponse)
def validate_interview(
    token: str = Query(default=""),
    service: InterviewService = Depends(get_interview_service),
) -> CandidateInterviewResponse:
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token")
    try:
        job = service.validate_token(token)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CandidateInterviewResponse(interview=CandidateInterview(**job.model_dump(include=set(CandidateInterview.model_fields))))


@app.get("/interviews/{job_id}", response_model=InterviewStatusResponse)
def get_interview(job_id: UUID, service: InterviewService = Depends(get_interview_service)) -> InterviewStatusResponse:
    try:
        job = service.get_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return InterviewStatusResponse.from_job(job)


@app.post("/interviews/{job_id}/join", response_model=InterviewStatusResponse)
async def join_interview(
    job_id: UUID,
    service: InterviewService = Depends(get_interview_service),
) -> InterviewStatusResponse:
    try:
        job = await service.mark_candidate_joined(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return InterviewStatusResponse.from_job(job)


@app.post("/interviews/{job_id}/recording", response_model=RecordingSubmissionResponse)
async def submit_recording(
    job_id: UUID,
    payload: RecordingSubmissionRequest,
    service: InterviewService = Depends(get_interview_service),
):
    try:
        data = base64.b64decode(payload.data, validate=True)
    except (binascii.Error, ValueError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=RecordingSubmissionResponse(success=False, error="invalid base64 payload").model_dump(),
        )
    try:
        job = await service.submit_recording(
            job_id,
            data,
            content_type=payload.content_type,
            filename=payload.filename,
        )
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=RecordingSubmissionResponse(success=False, error=str(exc)).model_dump(),
        )
    if job.state is not InterviewState.COMPLETED:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=RecordingSubmissionResponse(success=False, error=job.error or "Failed to process recording").model_dump(),
        )
    return RecordingSubmissionResponse(success=True)


@app.get("/interviews/{job_id}/summary", response_model=InterviewSummaryResponse)
def get_interview_summary(
    job_id: UUID,
    user_id: str = Depends(require_user_id),
    service: InterviewService = Depends(get_interview_service),
) -> InterviewSummaryResponse:
    try:
        job = service.get_summary(job_id, user_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return InterviewSummaryResponse(interview=InterviewSummary(**job.model_dump(include=set(InterviewSummary.model_fields))))


@app.get("/avatars", response_model=AvatarListResponse)
async def list_avatars(
    user_id: str = Depends(require_user_id),
    service: InterviewService = Depends(get_interview_service),
) -> AvatarListResponse:
    try:
        avatars = await service.list_avatars()
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch avatars") from exc
    return AvatarListResponse(avatars=avatars)
