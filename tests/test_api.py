import base64
import time
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

import app.main as main_module
from app.main import app, get_interview_service

HEADERS = {"X-User-ID": "recruiter-1"}

PAYLOAD = {
    "avatar_id": "avatar-1",
    "resume_text": "Backend engineer with 5 years of Python and AWS.",
    "job_description": "Senior Python developer for a payments team.",
    "candidate_email": "candidate@example.com",
    "timestamp": "00:00:05",
}


@pytest.fixture
def api(build_service):
    service, _, _ = build_service()
    app.dependency_overrides[get_interview_service] = lambda: service
    with TestClient(app) as client:
        yield client, service
    app.dependency_overrides.clear()


def _wait_for_state(client, job_id, state):
    body = None
    for _ in range(40):
        resp = client.get(f"/interviews/{job_id}")
        assert resp.status_code == 200
        body = resp.json()
        if body["state"] == state:
            return body
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} stuck in {body and body['state']}")


def test_interview_flow_with_local_queue(api):
    client, service = api

    create_resp = client.post("/interviews", json=PAYLOAD, headers=HEADERS)
    assert create_resp.status_code == 202
    assert create_resp.json()["success"] is True
    job_id = create_resp.json()["job_id"]

    job = _wait_for_state(client, job_id, "ready_for_candidate")
    assert job["final_video_url"].endswith("/interview.mp4")
    assert job["thumbnail_url"].endswith("/interview.jpg")
    assert "resume_text" not in job

    list_resp = client.get("/interviews", headers=HEADERS)
    assert list_resp.status_code == 200
    assert any(item["id"] == job_id for item in list_resp.json()["items"])

    summary_resp = client.get(f"/interviews/{job_id}/summary", headers=HEADERS)
    assert summary_resp.status_code == 400

    token = service.get_job(UUID(job_id)).candidate_token
    validate_resp = client.get("/interviews:validate", params={"token": token})
    assert validate_resp.status_code == 200
    assert validate_resp.json()["interview"]["id"] == job_id

    join_resp = client.post(f"/interviews/{job_id}/join")
    assert join_resp.status_code == 200
    assert join_resp.json()["state"] == "waiting_for_candidate"

    recording = {
        "data": base64.b64encode(b"candidate-webm").decode("ascii"),
        "content_type": "video/webm",
        "filename": "answers.webm",
    }
    recording_resp = client.post(f"/interviews/{job_id}/recording", json=recording)
    assert recording_resp.status_code == 200
    assert recording_resp.json() == {"success": True, "error": None}

    summary_resp = client.get(f"/interviews/{job_id}/summary", headers=HEADERS)
    assert summary_resp.status_code == 200
    interview = summary_resp.json()["interview"]
    assert interview["state"] == "completed"
    assert interview["transcript"].startswith("Interview Transcript:")
    assert interview["summary"]

    again = client.post(f"/interviews/{job_id}/recording", json=recording)
    assert again.status_code == 400
    assert again.json()["success"] is False


def test_create_requires_user_header(api):
    client, _ = api
    resp = client.post("/interviews", json=PAYLOAD)
    assert resp.status_code == 401


def test_create_rejects_bad_timestamp(api):
    client, service = api
    for timestamp in ("00:75:00", "abc"):
        resp = client.post("/interviews", json={**PAYLOAD, "timestamp": timestamp}, headers=HEADERS)
        assert resp.status_code == 422
        body = resp.json()
        assert body["success"] is False
        assert body["error"].startswith("timestamp:")
        assert "HH:MM:SS" in body["error"]
    assert service.list_jobs("recruiter-1") == []


def test_unknown_interview_and_token(api):
    client, _ = api
    assert client.get(f"/interviews/{uuid4()}").status_code == 404
    assert client.post(f"/interviews/{uuid4()}/join").status_code == 404
    assert client.get(f"/interviews/{uuid4()}/summary", headers=HEADERS).status_code == 404
    assert client.get("/interviews:validate", params={"token": "nope"}).status_code == 404
    assert client.get("/interviews:validate").status_code == 400


def test_recording_rejects_invalid_base64(api):
    client, _ = api
    resp = client.post(f"/interviews/{uuid4()}/recording", json={"data": "***"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "invalid base64 payload"}

    resp = client.post(f"/interviews/{uuid4()}/recording", json={})
    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_list_avatars(api):
    client, _ = api
    resp = client.get("/avatars", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["avatars"][0]["avatar_id"] == "avatar-1"


def test_other_routes_keep_default_validation_body(api):
    client, _ = api
    resp = client.get("/interviews/not-a-uuid")
    assert resp.status_code == 422
    assert "detail" in resp.json()


class ClosingPublisher:
    def __init__(self):
        self.closed = False

    def publish_job(self, job):
        pass

    def close(self):
        self.closed = True


def test_shutdown_closes_event_publisher(build_service, monkeypatch):
    service, pipeline, _ = build_service()
    pipeline.events = ClosingPublisher()
    monkeypatch.setattr(main_module, "_service", service)

    with TestClient(app):
        assert not pipeline.events.closed

    assert pipeline.events.closed
