from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from uuid import UUID, uuid4


class ScratchSpace:
    """Per-run working directory; cleanup only touches what this run registered."""

    def __init__(self, root: str | Path, job_id: UUID, logger: Optional[logging.Logger] = None) -> None:
        self.run_id = uuid4().hex[:12]
        self.path = Path(root) / f"{job_id}-{self.run_id}"
        self.job_id = job_id
        self.log = logger or logging.getLogger(__name__)
        self._files: List[Path] = []
        self._created = False

    def __enter__(self) -> "ScratchSpace":
        self.path.mkdir(parents=True, exist_ok=False)
        self._created = True
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()

    def file(self, name: str) -> Path:
        path = self.path / name
        self._files.append(path)
        return path

    def cleanup(self) -> None:
        for path in reversed(self._files):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                self.log.warning(
                    "scratch file cleanup failed",
                    extra={"job_id": str(self.job_id), "path": str(path)},
                    exc_info=True,
                )
        self._files.clear()
        if not self._created:
            return
        try:
            self.path.rmdir()
        except OSError:
            self.log.warning(
                "scratch directory cleanup failed",
                extra={"job_id": str(self.job_id), "path": str(self.path)},
                exc_info=True,
            )
        self._created = False
