"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance. The same
object configures both the API server and the recording client.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """MindWell journal settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        llm_provider: Which LLM backend powers analysis stages ("claude" or "ollama").
        whisper_provider: STT backend ("local" for faster-whisper).
        database_url: Async SQLAlchemy connection string.
        auth_tokens: Bearer token -> user id map. Empty means development mode.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- LLM Provider ---
    # Drives mood analysis, categorization and title generation
    llm_provider: str = "ollama"

    # Claude (Anthropic API) settings
    claude_api_key: str = ""  # Required when llm_provider="claude"
    claude_model: str = "claude-sonnet-4-20250514"

    # Ollama (local LLM) settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"

    # --- Whisper STT ---
    whisper_provider: str = "local"
    whisper_model: str = "base"  # Model size: tiny, base, small, medium, large-v3
    whisper_default_language: str = ""  # Empty = auto-detect; ISO 639-1 code e.g. "pt", "en"

    # --- Application ---
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # --- Auth ---
    auth_tokens: dict[str, int] = {}
    default_user_id: int = 1  # Used when auth_tokens is empty

    # --- Storage ---
    database_url: str = "sqlite+aiosqlite:///data/mindwell.db"
    recordings_dir: str = "data/recordings"  # Uploaded journal audio

    # --- Submission validation ---
    min_upload_bytes: int = 1024
    max_upload_bytes: int = 25 * 1024 * 1024
    min_duration_seconds: float = 1.0

    # --- Processing pipeline ---
    stage_timeout_seconds: float = 120.0
    max_concurrent_jobs: int = 4
    job_retention_seconds: int = 3600  # Finished jobs answer 404 after this
    retention_sweep_interval_seconds: float = 300.0

    # --- Client ---
    api_base_url: str = "http://localhost:8000"
    api_token: str = ""
    upload_max_attempts: int = 3
    upload_backoff_seconds: float = 1.0
    upload_backoff_max_seconds: float = 8.0
    upload_deadline_seconds: float = 60.0
    poll_interval_seconds: float = 3.0
    poll_max_not_found: int = 5
    poll_max_transient_errors: int = 10

    # --- Capture ---
    capture_sample_rate: int = 16000  # Valid Opus rate; also what Whisper expects
    capture_channels: int = 1
    capture_min_seconds: float = 1.0
    capture_min_bytes: int = 1024


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
