from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

try:  # pragma: no cover - optional dependency
    from kafka import KafkaProducer
except ImportError:  # pragma: no cover - fallback when kafka-python absent
    KafkaProducer = None  # type: ignore

from app.models.domain import InterviewJob

# Candidate inputs and the join token never leave the service.
PRIVATE_FIELDS = frozenset({"resume_text", "job_description", "candidate_token"})


class JobEventPublisher:
    """Publishes an ``interview.state_changed`` event, keyed by job id, after every transition."""

    def __init__(self, bootstrap_servers: str, topic: str, logger: logging.Logger | None = None) -> None:
        if KafkaProducer is None:
            raise RuntimeError("kafka-python is not installed")
        if not bootstrap_servers or not topic:
            raise ValueError("bootstrap_servers and topic are required")
        self._topic = topic
        self._logger = logger or logging.getLogger(__name__)
        self._producer = KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda payload: json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8"),
            linger_ms=5,
        )

    @staticmethod
    def build_event(job: InterviewJob) -> dict[str, Any]:
        latest = job.status_history[-1] if job.status_history else None
        return {
            "event": "interview.state_changed",
            "job_id": str(job.id),
            "state": job.state.value,
            "message": latest.message if latest else None,
            "occurred_at": (latest.occurred_at if latest else datetime.utcnow()).isoformat(),
            "job": job.model_dump(mode="json", exclude=set(PRIVATE_FIELDS)),
        }

    def publish_job(self, job: InterviewJob) -> None:
        try:
            self._producer.send(self._topic, key=str(job.id), value=self.build_event(job))
        except Exception:
            self._logger.warning(
                "failed to publish interview event",
                extra={"job_id": str(job.id), "topic": self._topic, "state": job.state.value},
                exc_info=True,
            )

    def close(self) -> None:
        try:
            self._producer.flush(timeout=5)
            self._producer.close()
        except Exception:
            self._logger.debug("interview event publisher close failed", exc_info=True)
