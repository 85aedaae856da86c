"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # cadence/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Anthropic (text generation)
    anthropic_api_key: str | None = None
    cadence_anthropic_model: str = "claude-sonnet-4-20250514"

    # Google generative API (Veo video generation)
    google_api_key: str | None = None
    veo_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    video_poll_interval: float = 5.0
    video_max_polls: int = 60

    # Retry defaults for every external provider call (seconds)
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # A job that reports nothing for this long is considered abandoned
    job_lease_seconds: int = 300

    # In-process usage ledger size
    usage_ledger_capacity: int = 1000

    # Data directory: jobs/brands/usage JSON files and generated media
    cadence_data_dir: str = "./data"

    # Postgres URL. When unset the file-based stores are used.
    cadence_database_url: str | None = None

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    cors_origin_regex: str | None = None

    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Data directory as an absolute Path.

        Relative paths are resolved against the project root (not CWD),
        so the backend works whether started from project root or backend/.
        """
        p = Path(self.cadence_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def media_dir(self) -> Path:
        """Generated videos and images."""
        return self.data_dir / "media"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def retry_options(self) -> dict:
        """Keyword arguments for ``cadence.retry.with_retry``."""
        return {
            "max_retries": self.retry_max_retries,
            "base_delay": self.retry_base_delay,
            "max_delay": self.retry_max_delay,
        }

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
