"""The interview job state machine.

``run`` drives a freshly created job from question generation to an uploaded
interview reel; ``run_candidate`` takes a submitted recording through upload,
transcription and summary. Every stage re-reads the job, does its external
work, and writes its outputs together with the next state in one store
update. Any exception ends the job in ``failed``; there is no resume.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional
from urllib.parse import urlsplit, urlunsplit
from uuid import UUID

import httpx

from app.config import Settings
from app.media.plan import build_concat_plan
from app.media.scratch import ScratchSpace
from app.models.domain import InterviewJob, InterviewState, RenderJob, RenderStatus
from app.services.errors import (
    DownloadFailedError,
    EncodeFailedError,
    InvalidTransitionError,
    JobNotFoundError,
    RenderTimeoutError,
    UploadFailedError,
)
from app.services.transcription import Transcriber
from app.storage.repository import InterviewJobRepository

_EXTENSION = re.compile(r"\.[^/.]+$")


class StageSkipped(Exception):
    """The job is no longer in the state a stage expects, e.g. a duplicate run."""


def thumbnail_url_for(video_url: str) -> str:
    """Swap the file extension of the video path for ``.jpg``; extensionless URLs pass through."""
    parts = urlsplit(video_url)
    return urlunsplit(parts._replace(path=_EXTENSION.sub(".jpg", parts.path)))


class InterviewPipeline:
    def __init__(
        self,
        repo: InterviewJobRepository,
        llm,
        render,
        assembler,
        storage,
        transcriber: Transcriber,
        settings: Settings,
        events=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repo = repo
        self.llm = llm
        self.render = render
        self.assembler = assembler
        self.storage = storage
        self.transcriber = transcriber
        self.settings = settings
        self.events = events
        self._sleep = sleep
        self.log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------ interview reel

    async def run(self, job_id: UUID) -> None:
        try:
            job = self.repo.get(job_id)
        except JobNotFoundError:
            self.log.warning("pipeline started for unknown job", extra={"job_id": str(job_id)})
            return
        if job.state is not InterviewState.GENERATING_QUESTIONS:
            self.log.info(
                "pipeline invocation skipped",
                extra={"job_id": str(job_id), "state": job.state.value},
            )
            return
        try:
            with ScratchSpace(self.settings.scratch_root, job_id, logger=self.log) as scratch:
                await self._generate_questions(job_id)
                render_jobs = await self._generate_videos(job_id)
                render_jobs = await self._process_videos(job_id, render_jobs)
                merged = await self._merge_videos(job_id, render_jobs, scratch)
                await self._upload_video(job_id, merged)
        except StageSkipped as exc:
            self.log.info("pipeline stopped early", extra={"job_id": str(job_id), "reason": str(exc)})
        except Exception as exc:
            self.log.exception("interview pipeline failed", extra={"job_id": str(job_id)})
            await self._fail(job_id, exc)

    async def _generate_questions(self, job_id: UUID) -> None:
        job = self._load(job_id, InterviewState.GENERATING_QUESTIONS)
        questions = await self.llm.generate_questions(job.resume_text, job.job_description)
        await self.record(
            job_id,
            InterviewState.GENERATING_VIDEOS,
            f"Generated {len(questions)} interview questions",
            questions=questions,
        )

    async def _generate_videos(self, job_id: UUID) -> List[RenderJob]:
        job = self._load(job_id, InterviewState.GENERATING_VIDEOS)
        render_jobs: List[RenderJob] = []
        for index, question in enumerate(job.questions):
            render_id = await self.render.submit(job.avatar_id, question)
            render_jobs.append(RenderJob(index=index, avatar_id=job.avatar_id, question=question, render_id=render_id))
        await self.record(
            job_id,
            InterviewState.PROCESSING_VIDEOS,
            f"Submitted {len(render_jobs)} avatar renders",
            render_job_ids=[item.render_id for item in render_jobs],
        )
        return render_jobs

    async def _process_videos(self, job_id: UUID, render_jobs: List[RenderJob]) -> List[RenderJob]:
        job = self._load(job_id, InterviewState.PROCESSING_VIDEOS)
        completed = await self.wait_for_renders(render_jobs, job.avatar_id, job_id=job_id)
        await self.record(job_id, InterviewState.MERGING_VIDEOS, f"All {len(completed)} avatar renders completed")
        return completed

    async def wait_for_renders(
        self,
        render_jobs: List[RenderJob],
        avatar_id: str | None = None,
        job_id: UUID | None = None,
    ) -> List[RenderJob]:
        """Poll until every tracked render has succeeded with an output URL.

        Returns the render jobs in question order with ``output_url`` filled in.
        Raises :class:`RenderTimeoutError` once the attempt ceiling is reached.
        """
        tracked = {item.render_id: item for item in render_jobs}
        attempts = self.settings.render_poll_max_attempts
        interval = self.settings.render_poll_interval_seconds
        for attempt in range(1, attempts + 1):
            await self._sleep(interval)
            statuses = await self.render.poll_all(avatar_id)
            ours = {status.render_id: status for status in statuses if status.render_id in tracked}
            ready = [status for status in ours.values() if status.succeeded]
            if len(ours) == len(tracked) and len(ready) == len(tracked):
                for render_id, item in tracked.items():
                    item.status = RenderStatus.SUCCEEDED
                    item.output_url = ours[render_id].output_url
                return sorted(render_jobs, key=lambda item: item.index)
            self.log.info(
                "avatar renders pending",
                extra={
                    "job_id": str(job_id) if job_id else None,
                    "attempt": attempt,
                    "ready": len(ready),
                    "tracked": len(tracked),
                },
            )
        raise RenderTimeoutError(
            f"Timed out waiting for avatar renders after {attempts} attempts every {interval:g}s"
        )

    async def _merge_videos(self, job_id: UUID, render_jobs: List[RenderJob], scratch: ScratchSpace) -> Path:
        job = self._load(job_id, InterviewState.MERGING_VIDEOS)
        clip_paths: List[Path] = []
        for item in render_jobs:
            if not item.output_url:
                raise DownloadFailedError(f"render {item.render_id} has no output URL")
            path = scratch.file(f"question_{item.index + 1}.mp4")
            await self.assembler.download(item.output_url, path)
            clip_paths.append(path)

        filler_path = await self._prepare_filler(job, scratch)
        clips = await self.assembler.probe_inputs(clip_paths)
        filler = (await self.assembler.probe_inputs([filler_path]))[0]
        plan = build_concat_plan(clips, filler)
        if plan.skipped:
            self.log.warning(
                "inputs without streams skipped",
                extra={"job_id": str(job_id), "skipped": [str(path) for path in plan.skipped]},
            )

        output = scratch.file("final_interview.mp4")
        message = f"Merged {len(plan.clips)} question clips with {len(plan.fillers)} filler segments"
        try:
            merged = await self.assembler.encode(plan, output)
        except EncodeFailedError as exc:
            self.log.warning(
                "merge failed, falling back to the first question clip",
                extra={"job_id": str(job_id), "error": str(exc)},
            )
            merged = clip_paths[0]
            message = f"Merge failed, using the first question clip only: {exc}"
        await self.record(job_id, InterviewState.UPLOADING_VIDEO, message)
        return merged

    async def _prepare_filler(self, job: InterviewJob, scratch: ScratchSpace) -> Path:
        source: str | Path = await self._resolve_base_video(job.avatar_id)
        if str(source).lower().startswith(("http://", "https://")):
            source = await self.assembler.download(str(source), scratch.file("avatar_base.mp4"))
        segment = await self.assembler.extract_segment(
            source,
            job.timestamp,
            self.settings.nodding_clip_seconds,
            scratch.file("nodding_clip.mp4"),
        )
        return await self.assembler.loop_segment(
            segment,
            self.settings.nodding_loop_count,
            scratch.file("nodding_concat.txt"),
            scratch.file("nodding_extended.mp4"),
        )

    async def _resolve_base_video(self, avatar_id: str) -> str:
        configured = self.settings.avatar_base_videos.get(avatar_id)
        if configured:
            return configured
        if self.render.enabled():
            try:
                listed = await self.render.avatar_base_video(avatar_id)
            except httpx.HTTPError as exc:
                self.log.warning("avatar lookup failed", extra={"avatar_id": avatar_id, "error": str(exc)})
                listed = None
            if listed:
                return listed
        return self.settings.default_base_video

    async def _upload_video(self, job_id: UUID, merged: Path) -> None:
        job = self._load(job_id, InterviewState.UPLOADING_VIDEO)
        key = f"{self.settings.storage_folder_prefix}/{job.id}/interview.mp4"
        video_url = await self._upload(key, merged, "video/mp4")
        await self.record(
            job_id,
            InterviewState.READY_FOR_CANDIDATE,
            "Interview video is ready for the candidate",
            final_video_url=video_url,
            thumbnail_url=thumbnail_url_for(video_url),
        )

    # ------------------------------------------------------------------ candidate recording

    async def run_candidate(
        self,
        job_id: UUID,
        recording: bytes,
        content_type: str = "video/webm",
        suffix: str = ".webm",
    ) -> InterviewJob:
        """Process a recording for a job already moved to ``candidate_completed``."""
        try:
            with ScratchSpace(self.settings.scratch_root, job_id, logger=self.log) as scratch:
                self._load(job_id, InterviewState.CANDIDATE_COMPLETED)
                await self.record(job_id, InterviewState.PROCESSING_CANDIDATE_VIDEO, "Processing candidate recording")
                media_path = await self._store_recording(job_id, recording, content_type, suffix, scratch)
                await self._summarize(job_id, media_path)
        except StageSkipped as exc:
            self.log.info("candidate pipeline stopped early", extra={"job_id": str(job_id), "reason": str(exc)})
        except Exception as exc:
            self.log.exception("candidate pipeline failed", extra={"job_id": str(job_id)})
            await self._fail(job_id, exc)
        return self.repo.get(job_id)

    async def _store_recording(
        self,
        job_id: UUID,
        recording: bytes,
        content_type: str,
        suffix: str,
        scratch: ScratchSpace,
    ) -> Path:
        self._load(job_id, InterviewState.PROCESSING_CANDIDATE_VIDEO)
        path = scratch.file(f"candidate_interview_{job_id}{suffix}")
        await asyncio.to_thread(path.write_bytes, recording)
        key = f"{self.settings.storage_folder_prefix}/{job_id}/candidate{suffix}"
        video_url = await self._upload(key, path, content_type)
        await self.record(
            job_id,
            InterviewState.GENERATING_SUMMARY,
            "Candidate recording uploaded",
            candidate_video_url=video_url,
        )
        return path

    async def _summarize(self, job_id: UUID, media_path: Path) -> None:
        job = self._load(job_id, InterviewState.GENERATING_SUMMARY)
        transcript = await self.transcriber.transcribe(media_path, job.questions)
        summary = await self.llm.summarize_transcript(transcript)
        await self.record(
            job_id,
            InterviewState.COMPLETED,
            "Interview summary generated",
            transcript=transcript,
            summary=summary,
            completed_at=datetime.utcnow(),
        )

    # ------------------------------------------------------------------ store helpers

    async def record(self, job_id: UUID, state: InterviewState, message: str, **fields: Any) -> InterviewJob:
        job = self.repo.update(job_id, state=state, message=message, **fields)
        self.log.info("interview state changed", extra={"job_id": str(job_id), "state": state.value})
        await self._persist_snapshot(job)
        self._emit_job_update(job)
        return job

    def _load(self, job_id: UUID, expected: InterviewState) -> InterviewJob:
        job = self.repo.get(job_id)
        if job.state is not expected:
            raise StageSkipped(f"expected {expected.value}, found {job.state.value}")
        return job

    async def _fail(self, job_id: UUID, exc: BaseException) -> None:
        detail = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        try:
            await self.record(job_id, InterviewState.FAILED, "Interview processing failed", error=detail)
        except (JobNotFoundError, InvalidTransitionError):
            self.log.warning("could not mark job failed", extra={"job_id": str(job_id), "error": detail})

    async def _upload(self, key: str, path: Path, content_type: str) -> str:
        try:
            return await asyncio.to_thread(self.storage.upload_file, key, path, content_type)
        except UploadFailedError:
            raise
        except Exception as exc:
            raise UploadFailedError(f"upload of {key} failed: {exc}") from exc

    async def _persist_snapshot(self, job: InterviewJob) -> None:
        creator = "-".join(part for part in re.split(r"[^A-Za-z0-9_.@-]+", job.creator_id) if part) or "anonymous"
        path = f"{self.settings.storage_folder_prefix}/{creator}/{job.id}/status.json"
        try:
            await asyncio.to_thread(self.storage.upload_json, path, job.model_dump(mode="json"))
        except Exception as exc:  # pragma: no cover - storage best effort
            self.log.warning("job snapshot persist failed", extra={"job_id": str(job.id), "error": str(exc)})

    def _emit_job_update(self, job: InterviewJob) -> None:
        if not self.events:
            return
        try:
            self.events.publish_job(job)
        except Exception:  # pragma: no cover
            self.log.warning("job event emission failed", extra={"job_id": str(job.id)}, exc_info=True)
