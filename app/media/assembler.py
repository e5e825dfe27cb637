from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Type

import httpx

from app.media.plan import ConcatPlan, MediaInput, StreamInfo, build_encode_command
from app.services.errors import DownloadFailedError, EncodeFailedError, FillerPreparationError, PipelineError


class MediaAssembler:
    """Drives ffprobe/ffmpeg for the interview reel and fetches remote media into scratch files."""

    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        timeout: float = 600.0,
        width: int = 1280,
        height: int = 720,
        fps: int = 25,
        download_timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.timeout = timeout
        self.width = width
        self.height = height
        self.fps = fps
        self.download_timeout = download_timeout
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    async def probe_streams(self, path: Path) -> StreamInfo:
        cmd = [
            self.ffprobe,
            "-v",
            "error",
            "-show_entries",
            "stream=codec_type:format=duration",
            "-of",
            "json",
            str(path),
        ]
        try:
            result = await asyncio.to_thread(
                subprocess.run, cmd, capture_output=True, text=True, check=True, timeout=self.timeout
            )
            payload = json.loads(result.stdout or "{}")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError, ValueError) as exc:
            self.log.warning("ffprobe failed", extra={"path": str(path), "error": str(exc)})
            return StreamInfo(has_video=False, has_audio=False)
        kinds = {stream.get("codec_type") for stream in payload.get("streams") or []}
        duration: float | None
        try:
            duration = float((payload.get("format") or {}).get("duration"))
        except (TypeError, ValueError):
            duration = None
        return StreamInfo(has_video="video" in kinds, has_audio="audio" in kinds, duration=duration)

    async def probe_inputs(self, paths: Sequence[Path]) -> List[MediaInput]:
        return [MediaInput(path=path, streams=await self.probe_streams(path)) for path in paths]

    async def encode(self, plan: ConcatPlan, output: Path) -> Path:
        if not plan.entries:
            raise EncodeFailedError("nothing to encode: every input was skipped")
        cmd = build_encode_command(plan, output, ffmpeg=self.ffmpeg, width=self.width, height=self.height, fps=self.fps)
        self.log.info(
            "encoding interview reel",
            extra={"entries": len(plan), "clips": len(plan.clips), "fillers": len(plan.fillers)},
        )
        await self._run(cmd, EncodeFailedError)
        if not output.exists() or output.stat().st_size == 0:
            raise EncodeFailedError(f"encoder produced no output at {output}")
        return output

    async def extract_segment(self, source: str | Path, start: str, seconds: int, output: Path) -> Path:
        cmd = [self.ffmpeg, "-y", "-ss", start, "-i", str(source), "-t", str(seconds), "-c", "copy", str(output)]
        await self._run(cmd, FillerPreparationError)
        return output

    async def loop_segment(self, segment: Path, times: int, list_file: Path, output: Path) -> Path:
        entry = f"file '{segment.resolve().as_posix()}'\n"
        await asyncio.to_thread(list_file.write_text, entry * max(1, times), "utf-8")
        cmd = [self.ffmpeg, "-y", "-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy", str(output)]
        await self._run(cmd, FillerPreparationError)
        return output

    async def download(self, url: str, destination: Path) -> Path:
        timeout = httpx.Timeout(connect=10.0, read=self.download_timeout, write=10.0, pool=self.download_timeout)
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=self._transport) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with destination.open("wb") as handle:
                        async for chunk in response.aiter_bytes():
                            if chunk:
                                handle.write(chunk)
        except (httpx.HTTPError, OSError) as exc:
            raise DownloadFailedError(f"download of {url} failed: {exc}") from exc
        return destination

    async def _run(self, cmd: List[str], error: Type[PipelineError]) -> None:
        try:
            await asyncio.to_thread(subprocess.run, cmd, capture_output=True, text=True, check=True, timeout=self.timeout)
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()[-2000:]
            self.log.warning("ffmpeg failed", extra={"returncode": exc.returncode, "stderr": stderr})
            raise error(f"{cmd[0]} exited with {exc.returncode}: {stderr}") from exc
        except subprocess.TimeoutExpired as exc:
            raise error(f"{cmd[0]} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise error(f"{cmd[0]} could not be started: {exc}") from exc
