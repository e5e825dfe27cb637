from __future__ import annotations

import secrets
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List
from uuid import UUID, uuid4

from app.models.domain import (
    InterviewInput,
    InterviewJob,
    InterviewState,
    InterviewStatusHistory,
    can_transition,
)
from app.services.errors import InvalidTransitionError, JobNotFoundError, JobStoreError

IMMUTABLE_FIELDS = frozenset(
    {"id", "creator_id", "avatar_id", "resume_text", "job_description", "candidate_email", "timestamp",
     "candidate_token", "created_at", "state", "status_history", "updated_at"}
)
WRITE_ONCE_FIELDS = frozenset(
    {"questions", "render_job_ids", "final_video_url", "thumbnail_url", "candidate_video_url", "transcript",
     "summary", "completed_at"}
)


class InterviewJobRepository:
    """In-memory job store. Every write is a single patch plus transition under one lock."""

    def __init__(self) -> None:
        self._jobs: Dict[UUID, InterviewJob] = {}
        self._lock = Lock()

    def create(self, payload: InterviewInput, creator_id: str) -> InterviewJob:
        job = InterviewJob(
            id=uuid4(),
            creator_id=creator_id,
            avatar_id=payload.avatar_id,
            resume_text=payload.resume_text,
            job_description=payload.job_description,
            candidate_email=payload.candidate_email,
            timestamp=payload.timestamp,
            state=InterviewState.CREATED,
            status_history=[InterviewStatusHistory(state=InterviewState.CREATED, message="Interview created")],
            candidate_token=secrets.token_urlsafe(24),
        )
        with self._lock:
            self._jobs[job.id] = job
            return job.model_copy(deep=True)

    def get(self, job_id: UUID) -> InterviewJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy(deep=True)

    def find_by_token(self, token: str) -> InterviewJob:
        with self._lock:
            for job in self._jobs.values():
                if secrets.compare_digest(job.candidate_token, token):
                    return job.model_copy(deep=True)
        raise JobNotFoundError("for token")

    def list(self, creator_id: str | None = None) -> List[InterviewJob]:
        with self._lock:
            jobs = [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if creator_id is None or job.creator_id == creator_id
            ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    def update(
        self,
        job_id: UUID,
        state: InterviewState | None = None,
        message: str | None = None,
        **fields: Any,
    ) -> InterviewJob:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            self._validate(current, state, fields)
            patched = current.model_copy(deep=True, update=fields)
            now = datetime.utcnow()
            if state is not None and state is not current.state:
                patched.state = state
                patched.status_history.append(
                    InterviewStatusHistory(state=state, message=message or state.value, occurred_at=now)
                )
            patched.updated_at = now
            self._jobs[job_id] = patched
            return patched.model_copy(deep=True)

    def _validate(self, job: InterviewJob, state: InterviewState | None, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(InterviewJob.model_fields)
        if unknown:
            raise JobStoreError(f"unknown job fields: {sorted(unknown)}")
        frozen = IMMUTABLE_FIELDS.intersection(fields)
        if frozen:
            raise JobStoreError(f"fields cannot be patched: {sorted(frozen)}")
        if state is not None and state is not job.state and not can_transition(job.state, state):
            raise InvalidTransitionError(f"cannot move job {job.id} from {job.state.value} to {state.value}")
        if "error" in fields and state is not InterviewState.FAILED:
            raise JobStoreError("error may only be recorded with the failed transition")
        for name in WRITE_ONCE_FIELDS.intersection(fields):
            existing = getattr(job, name)
            if existing and existing != fields[name]:
                raise JobStoreError(f"{name} is already set on job {job.id}")
        questions = fields.get("questions", job.questions)
        render_ids = fields.get("render_job_ids", job.render_job_ids)
        if render_ids and len(render_ids) != len(questions):
            raise JobStoreError(
                f"render_job_ids ({len(render_ids)}) must align with questions ({len(questions)})"
            )
