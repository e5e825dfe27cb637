from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.services.errors import UploadFailedError


class S3StorageClient:
    """Object storage for interview artifacts; keeps objects in memory when no bucket is configured."""

    def __init__(
        self,
        bucket: str,
        access_key: str | None,
        secret_key: str | None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_url: str | None = None,
        addressing_style: str | None = None,
        memory_limit_bytes: int = 256 * 1024 * 1024,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.bucket = (bucket or "").strip()
        self.endpoint_url = (endpoint_url or "").rstrip("/") or None
        self.public_url_base = (public_url or "").rstrip("/")
        self.log = logger or logging.getLogger(__name__)
        # Unconfigured fallback for local runs; oldest objects are evicted past the limit.
        self._memory: Dict[str, bytes] = {}
        self._memory_bytes = 0
        self.memory_limit_bytes = memory_limit_bytes
        self._client = None
        access_key = (access_key or "").strip()
        secret_key = (secret_key or "").strip()
        if self.bucket and access_key and secret_key:
            session = boto3.session.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=(region_name or "").strip() or None,
            )
            style = (addressing_style or "virtual").lower()
            self._client = session.client(
                "s3",
                endpoint_url=self.endpoint_url,
                config=BotoConfig(s3={"addressing_style": style}, retries={"max_attempts": 3}),
            )

    def is_configured(self) -> bool:
        return self._client is not None

    def upload_json(self, key: str, payload: dict[str, Any]) -> str:
        body = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        return self._put(key, io.BytesIO(body), "application/json")

    def upload_file(self, key: str, source: Path, content_type: str = "video/mp4") -> str:
        """Stream a scratch file to the bucket and return its public URL."""
        try:
            handle = Path(source).open("rb")
        except OSError as exc:
            raise UploadFailedError(f"cannot read {source} for upload: {exc}") from exc
        with handle:
            url = self._put(key, handle, content_type)
        self.log.info("artifact uploaded", extra={"key": self._clean_key(key), "content_type": content_type})
        return url

    def download_bytes(self, key: str) -> bytes:
        clean = self._clean_key(key)
        if self._client is None:
            try:
                return self._memory[clean]
            except KeyError:
                raise FileNotFoundError(clean) from None
        buffer = io.BytesIO()
        try:
            self._client.download_fileobj(self.bucket, clean, buffer)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise FileNotFoundError(f"{clean}: {exc}") from exc
        return buffer.getvalue()

    def public_url(self, key: str) -> str:
        clean = self._clean_key(key)
        if self.public_url_base:
            return f"{self.public_url_base}/{clean}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{clean}"
        return f"/{self.bucket}/{clean}"

    def _put(self, key: str, body: BinaryIO, content_type: str) -> str:
        clean = self._clean_key(key)
        if not clean:
            raise UploadFailedError("object key must not be empty")
        if self._client is None:
            self._remember(clean, body.read())
            return self.public_url(clean)
        try:
            self._client.upload_fileobj(body, self.bucket, clean, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise UploadFailedError(f"S3 upload of {clean} failed: {exc}") from exc
        return self.public_url(clean)

    def _remember(self, key: str, data: bytes) -> None:
        previous = self._memory.pop(key, None)
        if previous is not None:
            self._memory_bytes -= len(previous)
        self._memory[key] = data
        self._memory_bytes += len(data)
        while self._memory_bytes > self.memory_limit_bytes and len(self._memory) > 1:
            oldest = next(iter(self._memory))
            self._memory_bytes -= len(self._memory.pop(oldest))
            self.log.warning("memory storage full, evicted object", extra={"key": oldest})

    @staticmethod
    def _clean_key(key: str | None) -> str:
        return "/".join(part for part in (key or "").strip().split("/") if part)
