"""In-process stand-ins for the LLM, render service and media assembler."""

from pathlib import Path

from app.clients.render import RenderJobStatus
from app.media.plan import MediaInput, StreamInfo
from app.services.errors import EncodeFailedError, SubmissionRejectedError

QUESTIONS = [
    "Hi there! Hope you're well. Could you introduce yourself?",
    "That's all we had for today. Congratulations on completing the interview successfully!",
]


class FakeLLM:
    def __init__(self, questions=None, summary="Solid backend engineer. Recommend a follow-up."):
        self.questions = list(QUESTIONS if questions is None else questions)
        self.summary = summary
        self.transcripts = []

    async def generate_questions(self, resume_text, job_description):
        return list(self.questions)

    async def summarize_transcript(self, transcript):
        self.transcripts.append(transcript)
        return self.summary


class FakeRenderService:
    """Reports every submitted render as completed once ``ready_after`` polls happened."""

    def __init__(self, ready_after=1, never_ready=False, reject_at=None, stuck=(), unlisted=()):
        self.ready_after = ready_after
        self.never_ready = never_ready
        self.reject_at = reject_at
        self.stuck = set(stuck)
        self.unlisted = set(unlisted)
        self.submitted = []
        self.polls = 0

    def enabled(self):
        return False

    async def submit(self, avatar_id, text):
        if self.reject_at is not None and len(self.submitted) == self.reject_at:
            raise SubmissionRejectedError("no render id returned")
        render_id = f"render-{len(self.submitted) + 1}"
        self.submitted.append((avatar_id, text, render_id))
        return render_id

    async def poll_all(self, avatar_id=None):
        self.polls += 1
        done = not self.never_ready and self.polls >= self.ready_after
        statuses = [RenderJobStatus("someone-elses-render", "completed", "https://cdn.test/other.mp4")]
        # newest first, like the vendor listing
        for _, _, render_id in reversed(self.submitted):
            if render_id in self.unlisted:
                continue
            finished = done and render_id not in self.stuck
            statuses.append(
                RenderJobStatus(
                    render_id,
                    "completed" if finished else "processing",
                    f"https://cdn.test/{render_id}.mp4" if finished else None,
                )
            )
        return statuses

    async def list_avatars(self):
        return [{"avatar_id": "avatar-1", "name": "Ava"}]


class FakeAssembler:
    def __init__(self, fail_encode=False):
        self.fail_encode = fail_encode
        self.downloads = []
        self.segments = []
        self.plans = []

    async def download(self, url, destination):
        destination.write_bytes(f"clip:{url}".encode())
        self.downloads.append(url)
        return destination

    async def extract_segment(self, source, start, seconds, output):
        self.segments.append((str(source), start, seconds))
        output.write_bytes(b"nod")
        return output

    async def loop_segment(self, segment, times, list_file, output):
        list_file.write_text(f"file '{segment}'\n" * times)
        output.write_bytes(segment.read_bytes() * times)
        return output

    async def probe_inputs(self, paths):
        return [MediaInput(path=Path(path), streams=StreamInfo(True, True, 4.0)) for path in paths]

    async def encode(self, plan, output):
        self.plans.append(plan)
        if self.fail_encode:
            raise EncodeFailedError("ffmpeg exited with 1: invalid filter graph")
        output.write_bytes(b"merged-reel")
        return output


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
