from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures that end an interview job in the failed state."""


class EmptyResponseError(PipelineError):
    """The LLM returned no content."""


class ParseError(PipelineError):
    """The LLM content could not be read as the expected structured payload."""


class SubmissionRejectedError(PipelineError):
    """The render service did not hand back a render id."""


class RenderTimeoutError(PipelineError):
    """Renders were still incomplete when the polling ceiling was reached."""


class DownloadFailedError(PipelineError):
    pass


class EncodeFailedError(PipelineError):
    """Raised by the media assembler; callers substitute a degraded output."""


class FillerPreparationError(PipelineError):
    pass


class UploadFailedError(PipelineError):
    pass


class TranscriptionError(PipelineError):
    pass


class JobNotFoundError(PipelineError):
    def __init__(self, job_id: object) -> None:
        super().__init__(f"Interview job {job_id} not found")
        self.job_id = job_id


class JobStoreError(PipelineError):
    """A patch would break one of the stored job invariants."""


class InvalidTransitionError(JobStoreError):
    pass
