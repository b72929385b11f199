"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Aggregation
    max_suggestions_per_note: int = 5

    # Thresholds
    t_action: float = 0.5
    t_out_of_scope: float = 0.4
    t_section_min: float = 0.6
    t_overall_min: float = 0.65
    t_generic: float = 0.55
    min_evidence_chars: int = 120

    # Preprocessing
    max_section_chars: int = 20000

    # Debug Runs
    enable_debug: bool = False
    debug_verbosity: str = "redacted"
    allow_full_text_debug: bool = False
    debug_max_bytes: int = 512 * 1024

    # Debug Artifact Storage
    debug_store_dir: str = "data/debug_runs"
    debug_rate_limit_seconds: int = 3600
    debug_retention_hours: int = 72

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
