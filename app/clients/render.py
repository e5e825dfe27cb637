from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

import httpx

from app.services.errors import SubmissionRejectedError

COMPLETED_STATUSES = frozenset({"completed", "succeeded"})


@dataclass(frozen=True)
class RenderJobStatus:
    render_id: str
    status: str
    output_url: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status.lower() in COMPLETED_STATUSES and bool(self.output_url)


class AvatarRenderClient:
    """Thin transport wrapper over the avatar video render service."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://os.gan.ai/v1",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key)

    async def submit(self, avatar_id: str, text: str) -> str:
        payload = {
            "avatar_id": avatar_id,
            "title": f"Interview Question {datetime.utcnow().isoformat()}",
            "text": text,
            "audio_url": "",
        }
        async with self._client() as client:
            try:
                response = await client.post(
                    f"{self.base_url}/avatars/create_video",
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPStatusError as exc:
                self.log.error(
                    "render submission HTTP error",
                    extra={"status": exc.response.status_code, "body": exc.response.text, "avatar_id": avatar_id},
                )
                raise SubmissionRejectedError(
                    f"render service rejected question '{text[:20]}...': HTTP {exc.response.status_code}"
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                raise SubmissionRejectedError(f"render submission failed: {exc}") from exc
        render_id = body.get("inference_id") if isinstance(body, dict) else None
        if not render_id:
            raise SubmissionRejectedError(f"no render id returned for question '{text[:20]}...'")
        self.log.info("render submitted", extra={"avatar_id": avatar_id, "render_id": render_id})
        return str(render_id)

    async def poll_all(self, avatar_id: str | None = None) -> List[RenderJobStatus]:
        params = {"avatar_id": avatar_id} if avatar_id else None
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/avatars/list_inferences", params=params)
            response.raise_for_status()
            body = response.json()
        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            self.log.warning("render status listing missing data", extra={"avatar_id": avatar_id})
            return []
        statuses: List[RenderJobStatus] = []
        for item in items:
            render_id = item.get("inference_id")
            if not render_id:
                continue
            statuses.append(
                RenderJobStatus(
                    render_id=str(render_id),
                    status=str(item.get("status") or ""),
                    output_url=item.get("video") or None,
                )
            )
        return statuses

    async def list_avatars(self) -> List[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/avatars/list")
            response.raise_for_status()
            body = response.json()
        avatars = body.get("avatars_list") if isinstance(body, dict) else None
        return avatars if isinstance(avatars, list) else []

    async def avatar_base_video(self, avatar_id: str) -> str | None:
        for avatar in await self.list_avatars():
            if str(avatar.get("avatar_id")) != avatar_id:
                continue
            return avatar.get("base_video") or avatar.get("video_url") or avatar.get("video")
        return None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"ganos-api-key": self.api_key},
            transport=self._transport,
        )
