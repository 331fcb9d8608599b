"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # vidforge/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data directory: local object storage and scratch space live under it
    vidforge_data_dir: str = "./data"

    # Scratch root for render downloads/outputs (default: <data_dir>/scratch)
    vidforge_scratch_dir: str | None = None

    # Postgres URL for the job queue and content tables.
    # Unset → in-memory stores (single process, development only).
    vidforge_database_url: str | None = None

    # Schema holding the job queue tables
    vidforge_jobs_schema: str = "jobs"

    # Supabase project (object storage). Unset → local file storage.
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Transcoder binaries
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Encoding
    render_width: int = 1080
    render_height: int = 1920
    render_crf: int = 20
    render_preset: str = "medium"
    render_gop: int = 48
    render_audio_bitrate: str = "192k"
    render_subtitle_font: str = "Arial"
    render_subtitle_size: int = 24
    signed_url_ttl_seconds: int = 3600
    download_concurrency: int = 4

    # Retry defaults (seconds)
    job_retry_limit: int = 3
    job_retry_delay: int = 30
    job_retry_backoff: bool = True
    job_remove_on_complete: int | None = 600
    job_remove_on_fail: int | None = 3600
    generate_retry_limit: int = 5
    publish_retry_limit: int = 2

    # Worker runtime
    worker_poll_interval: float = 2.0
    worker_lease_seconds: int = 15 * 60
    worker_maintenance_interval: float = 60.0
    generate_concurrency: int = 2
    render_concurrency: int = 1
    publish_concurrency: int = 2

    # Scheduler
    scheduler_interval: float = 60.0
    scheduler_default_platforms: str = "youtube"

    # Platform publish ceilings (posts per rolling 24 h)
    youtube_daily_limit: int = 6
    tiktok_daily_limit: int = 10
    instagram_daily_limit: int = 25
    twitter_daily_limit: int = 50

    # YouTube OAuth (channel-level credentials)
    youtube_client_id: str | None = None
    youtube_client_secret: str | None = None
    youtube_refresh_token: str | None = None

    # LLM provider: openai | anthropic
    vidforge_llm_provider: str = "openai"
    openai_api_key: str | None = None
    vidforge_openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str | None = None
    vidforge_anthropic_model: str = "claude-3-5-sonnet-20241022"

    @property
    def data_dir(self) -> Path:
        """Data directory as an absolute Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.vidforge_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def scratch_dir(self) -> Path:
        if self.vidforge_scratch_dir:
            return Path(self.vidforge_scratch_dir).resolve()
        return self.data_dir / "scratch"

    @property
    def storage_dir(self) -> Path:
        """Root for the local object storage fallback."""
        return self.data_dir / "storage"

    @property
    def default_platforms(self) -> list[str]:
        """Parse comma-separated scheduler platforms into a list."""
        return [p.strip().lower() for p in self.scheduler_default_platforms.split(",") if p.strip()]

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        self.storage_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
