from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INTERVIEW_SERVICE_", env_file=".env", env_file_encoding="utf-8")

    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_updates_topic: str = "interview_updates"

    # Question generation / summary LLM (OpenAI-compatible chat completions)
    groq_api_key: str = ""
    groq_model: str = "llama-3.1-70b-versatile"
    groq_base_url: str = "https://api.groq.com/openai"
    llm_timeout: float = 60.0
    resume_char_budget: int = 1500
    job_description_char_budget: int = 1000
    question_count: int = 5

    # Avatar render service
    render_api_key: str = ""
    render_base_url: str = "https://os.gan.ai/v1"
    render_timeout: float = 30.0
    render_poll_interval_seconds: float = 5.0
    render_poll_max_attempts: int = 30

    # Object storage configuration
    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_bucket: str = "interviews"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str | None = None
    storage_folder_prefix: str = "interviews"
    s3_memory_limit_bytes: int = 256 * 1024 * 1024

    # Media assembly
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    ffmpeg_timeout: float = 600.0
    download_timeout: float = 120.0
    scratch_root: str = "tmp"
    nodding_clip_seconds: int = 10
    nodding_loop_count: int = 3
    output_width: int = 1280
    output_height: int = 720
    output_fps: int = 25
    default_base_video: str = "public/sample_video.mp4"
    avatar_base_videos: dict[str, str] = Field(default_factory=dict)

    # Candidate transcription
    transcriber: str = "scripted"
    whisper_local_model: str = "base"
    whisper_language: str | None = "en"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
