"""Candidate recording transcription.

The pipeline only depends on the :class:`Transcriber` protocol. ``scripted``
builds a placeholder transcript from the stored questions and is the default
until a speech-to-text backend is configured; ``whisper`` runs a local
openai-whisper model over the recording.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol, Sequence

from app.config import Settings
from app.services.errors import TranscriptionError

SCRIPTED_ANSWERS = (
    "Hi there! Thanks for having me. I'm excited to be here. I have 5 years of experience in software "
    "development, specializing in full-stack web applications.",
    "I worked on a challenging project last year where we had to migrate a legacy system to a modern tech "
    "stack. We faced several issues with data migration but successfully implemented a phased approach that "
    "minimized downtime.",
    "For testing, I believe in a combination of unit tests and integration tests. I usually aim for at least "
    "80% code coverage, and I make sure to document all APIs thoroughly with examples and edge cases.",
    "I've always valued teamwork. In my last role, I led a team of four developers on a project with tight "
    "deadlines. We implemented daily stand-ups and pair programming which significantly improved our "
    "productivity.",
    "Thank you for this opportunity. I enjoyed discussing my background and experience, and I look forward "
    "to potentially joining your team.",
)


class Transcriber(Protocol):
    async def transcribe(self, media_path: Path, questions: Sequence[str]) -> str: ...  # pragma: no cover


class ScriptedTranscriber:
    """Placeholder transcript keyed off the question list; the recording itself is not inspected."""

    async def transcribe(self, media_path: Path, questions: Sequence[str]) -> str:
        lines = ["Interview Transcript:", ""]
        for index, question in enumerate(questions):
            lines.append(f"Interviewer: {question}")
            lines.append("")
            lines.append(f"Candidate: (Mock response to question {index + 1})")
            if index < len(SCRIPTED_ANSWERS):
                lines.append(SCRIPTED_ANSWERS[index])
            lines.append("")
        return "\n".join(lines)


class WhisperTranscriber:
    def __init__(self, client, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.log = logger or logging.getLogger(__name__)

    async def transcribe(self, media_path: Path, questions: Sequence[str]) -> str:
        try:
            text = await asyncio.to_thread(self.client.transcribe, media_path, questions)
        except Exception as exc:
            raise TranscriptionError(f"whisper transcription failed: {exc}") from exc
        if not text:
            raise TranscriptionError("whisper produced an empty transcript")
        return text


def build_transcriber(settings: Settings, logger: Optional[logging.Logger] = None) -> Transcriber:
    provider = settings.transcriber.lower()
    if provider == "scripted":
        return ScriptedTranscriber()
    if provider == "whisper":
        # openai-whisper pulls in torch; only load it when selected.
        from app.clients.whisper import LocalWhisperClient

        client = LocalWhisperClient(
            model_name=settings.whisper_local_model,
            language=settings.whisper_language,
            logger=logger,
        )
        return WhisperTranscriber(client, logger)
    raise ValueError(f"unknown transcriber provider: {settings.transcriber}")
