import pytest

from app.clients.s3_storage import S3StorageClient
from app.events.publisher import JobEventPublisher
from app.models.domain import InterviewInput, InterviewState
from app.storage.repository import InterviewJobRepository


def test_memory_storage_roundtrip_and_urls(tmp_path):
    storage = S3StorageClient(bucket="interviews", access_key=None, secret_key=None)
    source = tmp_path / "final_interview.mp4"
    source.write_bytes(b"reel")

    url = storage.upload_file("/interviews//job-1/interview.mp4", source)

    assert not storage.is_configured()
    assert url == "/interviews/interviews/job-1/interview.mp4"
    assert storage.download_bytes("interviews/job-1/interview.mp4") == b"reel"


def test_public_url_prefers_cdn_base():
    storage = S3StorageClient(
        bucket="interviews",
        access_key=None,
        secret_key=None,
        public_url="https://cdn.example.com/",
    )
    assert storage.public_url("a/b.mp4") == "https://cdn.example.com/a/b.mp4"


def test_event_payload_hides_candidate_inputs():
    repo = InterviewJobRepository()
    job = repo.create(
        InterviewInput(
            avatar_id="avatar-1",
            resume_text="private résumé",
            job_description="private jd",
            candidate_email="candidate@example.com",
            timestamp="00:00:00",
        ),
        creator_id="recruiter-1",
    )
    job = repo.update(job.id, state=InterviewState.GENERATING_QUESTIONS, message="Queued for question generation")

    event = JobEventPublisher.build_event(job)

    assert event["event"] == "interview.state_changed"
    assert event["state"] == "generating_questions"
    assert event["message"] == "Queued for question generation"
    assert "resume_text" not in event["job"]
    assert "candidate_token" not in event["job"]
    assert event["job"]["candidate_email"] == "candidate@example.com"


def test_memory_storage_evicts_oldest_objects(tmp_path):
    storage = S3StorageClient(bucket="interviews", access_key=None, secret_key=None, memory_limit_bytes=10)
    for name in ("a", "b", "c"):
        source = tmp_path / f"{name}.mp4"
        source.write_bytes(name.encode() * 4)
        storage.upload_file(f"interviews/{name}.mp4", source)

    assert storage.download_bytes("interviews/c.mp4") == b"cccc"
    assert storage.download_bytes("interviews/b.mp4") == b"bbbb"
    with pytest.raises(FileNotFoundError):
        storage.download_bytes("interviews/a.mp4")
