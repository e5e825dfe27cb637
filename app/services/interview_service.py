from __future__ import annotations

import logging
import mimetypes
from typing import Any, List, Optional
from uuid import UUID

from app.config import Settings
from app.models.domain import ACCEPTS_RECORDING, InterviewInput, InterviewJob, InterviewState
from app.queue.queue import BaseQueue
from app.services.errors import JobNotFoundError
from app.services.pipeline import InterviewPipeline
from app.storage.repository import InterviewJobRepository


class InterviewService:
    def __init__(
        self,
        repo: InterviewJobRepository,
        pipeline: InterviewPipeline,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repo = repo
        self.pipeline = pipeline
        self.settings = settings
        self.queue: BaseQueue | None = None
        self.log = logger or logging.getLogger(__name__)

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    async def create_job(self, payload: InterviewInput, creator_id: str) -> InterviewJob:
        job = self.repo.create(payload, creator_id)
        job = await self.pipeline.record(
            job.id,
            InterviewState.GENERATING_QUESTIONS,
            "Queued for question generation",
        )
        if self.queue is not None:
            self.queue.enqueue(job.id)
        else:  # pragma: no cover - fallback for misconfiguration
            self.log.warning("no queue bound, interview will not be processed", extra={"job_id": str(job.id)})
        return job

    def get_job(self, job_id: UUID, creator_id: str | None = None) -> InterviewJob:
        job = self.repo.get(job_id)
        if creator_id and job.creator_id != creator_id:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, creator_id: str) -> List[InterviewJob]:
        return self.repo.list(creator_id)

    def validate_token(self, token: str) -> InterviewJob:
        job = self.repo.find_by_token(token)
        if job.state not in ACCEPTS_RECORDING:
            raise ValueError("This interview is not yet ready")
        return job

    async def mark_candidate_joined(self, job_id: UUID) -> InterviewJob:
        job = self.repo.get(job_id)
        if job.state is InterviewState.WAITING_FOR_CANDIDATE:
            return job
        if job.state is not InterviewState.READY_FOR_CANDIDATE:
            raise ValueError("interview is not ready for the candidate")
        return await self.pipeline.record(
            job_id,
            InterviewState.WAITING_FOR_CANDIDATE,
            "Candidate joined the interview",
            candidate_joined=True,
        )

    async def submit_recording(
        self,
        job_id: UUID,
        data: bytes,
        content_type: str | None = None,
        filename: str | None = None,
    ) -> InterviewJob:
        if not data:
            raise ValueError("recording is empty")
        job = self.repo.get(job_id)
        if job.state not in ACCEPTS_RECORDING:
            raise ValueError("interview is not accepting recordings")
        content_type = content_type or "video/webm"
        suffix = self._recording_suffix(filename, content_type)
        await self.pipeline.record(job_id, InterviewState.CANDIDATE_COMPLETED, "Candidate recording received")
        return await self.pipeline.run_candidate(job_id, data, content_type=content_type, suffix=suffix)

    def get_summary(self, job_id: UUID, creator_id: str) -> InterviewJob:
        job = self.get_job(job_id, creator_id)
        if job.state is not InterviewState.COMPLETED:
            raise ValueError("Interview summary not yet available")
        return job

    async def list_avatars(self) -> List[dict[str, Any]]:
        return await self.pipeline.render.list_avatars()

    def _recording_suffix(self, filename: str | None, content_type: str) -> str:
        if filename and "." in filename:
            return "." + filename.rsplit(".", 1)[-1].lower()
        return mimetypes.guess_extension(content_type.split(";")[0].strip()) or ".webm"
