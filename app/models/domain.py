from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class InterviewState(str, Enum):
    CREATED = "created"
    GENERATING_QUESTIONS = "generating_questions"
    GENERATING_VIDEOS = "generating_videos"
    PROCESSING_VIDEOS = "processing_videos"
    MERGING_VIDEOS = "merging_videos"
    UPLOADING_VIDEO = "uploading_video"
    READY_FOR_CANDIDATE = "ready_for_candidate"
    WAITING_FOR_CANDIDATE = "waiting_for_candidate"
    CANDIDATE_COMPLETED = "candidate_completed"
    PROCESSING_CANDIDATE_VIDEO = "processing_candidate_video"
    GENERATING_SUMMARY = "generating_summary"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (InterviewState.COMPLETED, InterviewState.FAILED)


# Happy-path order; FAILED sits outside it.
STATE_ORDER: tuple[InterviewState, ...] = tuple(state for state in InterviewState if state is not InterviewState.FAILED)

ACCEPTS_RECORDING = (InterviewState.READY_FOR_CANDIDATE, InterviewState.WAITING_FOR_CANDIDATE)


def can_transition(current: InterviewState, target: InterviewState) -> bool:
    if current.terminal:
        return False
    if target is InterviewState.FAILED:
        return True
    return STATE_ORDER.index(target) > STATE_ORDER.index(current)


class InterviewStatusHistory(BaseModel):
    state: InterviewState
    message: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class InterviewInput(BaseModel):
    avatar_id: str
    resume_text: str
    job_description: str
    candidate_email: str
    timestamp: str


class InterviewJob(BaseModel):
    id: UUID
    creator_id: str
    avatar_id: str
    resume_text: str
    job_description: str
    candidate_email: str
    timestamp: str
    state: InterviewState
    status_history: List[InterviewStatusHistory] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    render_job_ids: List[str] = Field(default_factory=list)
    final_video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    candidate_token: str
    candidate_joined: bool = False
    candidate_video_url: Optional[str] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


class RenderStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"


@dataclass
class RenderJob:
    """One question clip tracked in memory while a pipeline run waits on the render service."""

    index: int
    avatar_id: str
    question: str
    render_id: str
    status: RenderStatus = RenderStatus.PENDING
    output_url: Optional[str] = None
