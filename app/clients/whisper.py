from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

import whisper


class LocalWhisperClient:
    """Transcribes candidate recordings with a local openai-whisper model.

    Blocking; callers run it in a worker thread. The model is loaded on first
    use and shared by every transcription in the process.
    """

    def __init__(
        self,
        model_name: str = "base",
        language: str | None = "en",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.model_name = model_name
        self.language = language
        self.log = logger or logging.getLogger(__name__)
        self._model = None
        self._load_lock = threading.Lock()

    def _model_or_load(self):
        with self._load_lock:
            if self._model is None:
                self._model = whisper.load_model(self.model_name)
                self.log.info("local whisper model loaded", extra={"model": self.model_name})
            return self._model

    def transcribe(self, media_path: Path, questions: Sequence[str] = ()) -> str:
        model = self._model_or_load()
        # questions bias vocabulary toward the role being discussed
        result = model.transcribe(
            str(media_path),
            task="transcribe",
            language=self.language,
            initial_prompt=" ".join(questions) or None,
            fp16=False,
            verbose=False,
        )
        text = (result.get("text") or "").strip()
        self.log.info(
            "candidate recording transcribed",
            extra={"model": self.model_name, "path": str(media_path), "chars": len(text)},
        )
        return text
