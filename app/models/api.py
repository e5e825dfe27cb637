from __future__ import annotations

import re
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, validator

from .domain import InterviewJob, InterviewState

# Hours are unconstrained two-digit values; minutes and seconds stop at 59.
TIMESTAMP_PATTERN = re.compile(r"^\d{2}:[0-5]\d:[0-5]\d$")


def is_valid_timestamp(value: str) -> bool:
    return bool(TIMESTAMP_PATTERN.match(value or ""))


class InterviewCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    avatar_id: str = Field(..., min_length=1, validation_alias="avatar_id")
    resume_text: str = Field(..., validation_alias="resume_text")
    job_description: str = Field(..., validation_alias="job_description")
    candidate_email: str = Field(..., validation_alias="candidate_email")
    timestamp: str = Field(default="00:00:00", validation_alias="timestamp")

    @validator("resume_text", "job_description")
    def validate_text(cls, value: str) -> str:  # noqa: D417
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @validator("candidate_email")
    def validate_email(cls, value: str) -> str:  # noqa: D417
        value = value.strip()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("candidate_email must be an email address")
        return value

    @validator("timestamp")
    def validate_timestamp(cls, value: str) -> str:  # noqa: D417
        if not is_valid_timestamp(value):
            raise ValueError("timestamp must use the HH:MM:SS format")
        return value


class InterviewCreateResponse(BaseModel):
    success: bool
    job_id: Optional[UUID] = None
    error: Optional[str] = None


class InterviewStatusResponse(BaseModel):
    """What the dashboard polls; the résumé and job description stay server side."""

    id: UUID
    state: InterviewState
    questions: List[str]
    render_job_ids: List[str]
    final_video_url: Optional[str]
    thumbnail_url: Optional[str]
    candidate_email: str
    candidate_joined: bool
    candidate_video_url: Optional[str]
    transcript: Optional[str]
    summary: Optional[str]
    error: Optional[str]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]

    @classmethod
    def from_job(cls, job: InterviewJob) -> "InterviewStatusResponse":
        return cls(**job.model_dump(include=set(cls.model_fields)))


class InterviewListResponse(BaseModel):
    items: List[InterviewStatusResponse]


class CandidateInterview(BaseModel):
    id: UUID
    state: InterviewState
    candidate_joined: bool
    final_video_url: Optional[str]
    questions: List[str]


class CandidateInterviewResponse(BaseModel):
    interview: CandidateInterview


class RecordingSubmissionRequest(BaseModel):
    data: str
    content_type: Optional[str] = None
    filename: Optional[str] = None


class RecordingSubmissionResponse(BaseModel):
    success: bool
    error: Optional[str] = None


class InterviewSummary(BaseModel):
    id: UUID
    candidate_email: str
    state: InterviewState
    candidate_video_url: Optional[str]
    transcript: Optional[str]
    summary: Optional[str]
    questions: List[str]
    completed_at: Optional[datetime]


class InterviewSummaryResponse(BaseModel):
    interview: InterviewSummary


class AvatarListResponse(BaseModel):
    avatars: List[dict[str, Any]]
