"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    json_logs: bool = True
    public_url: str = "http://localhost:3000"

    # CORS
    cors_allowed_origins: list[str] = ["*"]

    # Job store (memory or redis)
    store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    job_ttl_seconds: int = 3600

    # Render provider (Sora 2 via kie.ai)
    render_api_base_url: str = "https://api.kie.ai/api/v1"
    render_api_key: str = ""
    render_model: str = "sora-2-pro-text-to-video"
    render_n_frames: str = "15"
    render_size: str = "standard"
    render_remove_watermark: bool = True
    render_timeout_seconds: float = 30.0

    # Airtable
    airtable_api_key: str = ""
    airtable_base_id: str = ""
    airtable_table_name: str = ""
    airtable_api_url: str = "https://api.airtable.com/v0"
    airtable_video_field: str = "Video"

    # Prompt generation (OpenAI-compatible chat completions)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    # Media
    temp_dir: str = "./temp"
    ffmpeg_path: str = "ffmpeg"
    merge_workers: int = 1
    merge_timeout_seconds: float = 600.0
    merge_reencode: bool = False
    fetch_timeout_seconds: float = 120.0
    publish_timeout_seconds: float = 300.0
    publish_hosts: list[str] = ["0x0.st", "tmpfiles.org", "file.io"]

    # Background maintenance
    sweep_interval_seconds: int = 60
    awaiting_timeout_seconds: int | None = None
    temp_file_max_age_hours: float = 2.0
    cleanup_interval_seconds: int = 3600

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "STITCHFLOW_",
    }

    @property
    def render_callback_url(self) -> str:
        """Address the render provider posts task results to."""
        return f"{self.public_url.rstrip('/')}/api/v1/callbacks/render"

    @property
    def airtable_configured(self) -> bool:
        return bool(self.airtable_api_key and self.airtable_base_id and self.airtable_table_name)


settings = Settings()
