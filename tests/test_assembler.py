import asyncio
import json
import subprocess
from pathlib import Path

import httpx
import pytest

from app.media.assembler import MediaAssembler
from app.media.plan import ConcatPlan, MediaInput, StreamInfo, build_concat_plan
from app.services.errors import DownloadFailedError, EncodeFailedError, FillerPreparationError


def _completed(cmd, stdout=""):
    return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")


def test_probe_streams_reads_ffprobe_json(monkeypatch, tmp_path):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        payload = {"streams": [{"codec_type": "video"}], "format": {"duration": "4.200000"}}
        return _completed(cmd, json.dumps(payload))

    monkeypatch.setattr("app.media.assembler.subprocess.run", fake_run)
    info = asyncio.run(MediaAssembler(ffprobe="ffprobe-test").probe_streams(tmp_path / "clip.mp4"))

    assert info == StreamInfo(has_video=True, has_audio=False, duration=4.2)
    assert calls[0][0] == "ffprobe-test"


def test_probe_failure_reports_no_streams(monkeypatch, tmp_path):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, stderr="moov atom not found")

    monkeypatch.setattr("app.media.assembler.subprocess.run", fake_run)
    info = asyncio.run(MediaAssembler().probe_streams(tmp_path / "broken.mp4"))
    assert info.empty


def _plan(tmp_path):
    streams = StreamInfo(True, True, 3.0)
    clips = [MediaInput(tmp_path / "question_1.mp4", streams), MediaInput(tmp_path / "question_2.mp4", streams)]
    return build_concat_plan(clips, MediaInput(tmp_path / "nod.mp4", streams))


def test_encode_writes_output(monkeypatch, tmp_path):
    output = tmp_path / "final_interview.mp4"

    def fake_run(cmd, **kwargs):
        assert "-filter_complex" in cmd
        Path(cmd[-1]).write_bytes(b"reel")
        return _completed(cmd)

    monkeypatch.setattr("app.media.assembler.subprocess.run", fake_run)
    assert asyncio.run(MediaAssembler().encode(_plan(tmp_path), output)) == output
    assert output.read_bytes() == b"reel"


def test_encode_failure_raises(monkeypatch, tmp_path):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, stderr="Error reinitializing filters!")

    monkeypatch.setattr("app.media.assembler.subprocess.run", fake_run)
    with pytest.raises(EncodeFailedError) as exc_info:
        asyncio.run(MediaAssembler().encode(_plan(tmp_path), tmp_path / "out.mp4"))
    assert "Error reinitializing filters!" in str(exc_info.value)


def test_encode_without_output_file_raises(monkeypatch, tmp_path):
    monkeypatch.setattr("app.media.assembler.subprocess.run", lambda cmd, **kwargs: _completed(cmd))
    with pytest.raises(EncodeFailedError):
        asyncio.run(MediaAssembler().encode(_plan(tmp_path), tmp_path / "out.mp4"))


def test_encode_empty_plan_raises(tmp_path):
    with pytest.raises(EncodeFailedError):
        asyncio.run(MediaAssembler().encode(ConcatPlan(entries=()), tmp_path / "out.mp4"))


def test_loop_segment_writes_concat_list(monkeypatch, tmp_path):
    segment = tmp_path / "nodding_clip.mp4"
    segment.write_bytes(b"nod")
    list_file = tmp_path / "nodding_concat.txt"
    calls = []
    monkeypatch.setattr("app.media.assembler.subprocess.run", lambda cmd, **kwargs: calls.append(cmd) or _completed(cmd))

    asyncio.run(MediaAssembler().loop_segment(segment, 3, list_file, tmp_path / "nodding_extended.mp4"))

    lines = list_file.read_text().splitlines()
    assert lines == [f"file '{segment.resolve().as_posix()}'"] * 3
    assert calls[0][calls[0].index("-f") + 1] == "concat"


def test_extract_segment_failure_is_filler_error(monkeypatch, tmp_path):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr("app.media.assembler.subprocess.run", fake_run)
    with pytest.raises(FillerPreparationError):
        asyncio.run(MediaAssembler().extract_segment("base.mp4", "00:00:05", 10, tmp_path / "nod.mp4"))


def test_download_streams_to_destination(tmp_path):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"video-bytes"))
    destination = tmp_path / "question_1.mp4"

    asyncio.run(MediaAssembler(transport=transport).download("https://cdn.test/1.mp4", destination))

    assert destination.read_bytes() == b"video-bytes"


def test_download_http_error_raises(tmp_path):
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    with pytest.raises(DownloadFailedError):
        asyncio.run(MediaAssembler(transport=transport).download("https://cdn.test/missing.mp4", tmp_path / "x.mp4"))
