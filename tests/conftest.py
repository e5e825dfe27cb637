import pytest

from app.clients.s3_storage import S3StorageClient
from app.config import Settings
from app.queue.queue import LocalTaskQueue
from app.services.interview_service import InterviewService
from app.services.pipeline import InterviewPipeline
from app.services.transcription import ScriptedTranscriber
from app.storage.repository import InterviewJobRepository

from fakes import FakeAssembler, FakeLLM, FakeRenderService


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        scratch_root=str(tmp_path / "scratch"),
        render_poll_interval_seconds=0,
        default_base_video="/media/avatar-base.mp4",
    )


@pytest.fixture
def build_service(settings):
    """Factory returning ``(service, pipeline, queue)`` wired with fakes unless overridden."""

    def _build(llm=None, render=None, assembler=None, sleep=None, app_settings=None):
        app_settings = app_settings or settings
        repo = InterviewJobRepository()
        kwargs = {"sleep": sleep} if sleep is not None else {}
        pipeline = InterviewPipeline(
            repo=repo,
            llm=llm or FakeLLM(),
            render=render or FakeRenderService(),
            assembler=assembler or FakeAssembler(),
            storage=S3StorageClient(bucket="interviews", access_key=None, secret_key=None),
            transcriber=ScriptedTranscriber(),
            settings=app_settings,
            **kwargs,
        )
        service = InterviewService(repo=repo, pipeline=pipeline, settings=app_settings)
        queue = LocalTaskQueue(processor=pipeline.run)
        service.bind_queue(queue)
        return service, pipeline, queue

    return _build
