"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (prefix ARENA_) or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ARENA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence
    database_url: str = Field(
        default="sqlite:///./chess_arena.db", description="SQLAlchemy database URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Match pacing and termination
    min_move_interval_seconds: float = Field(
        default=5.0, ge=0, description="Minimum time between two autonomous moves"
    )
    max_plies: int = Field(
        default=200, gt=0, description="Safety cutoff: forced draw after this many plies"
    )
    betting_window_seconds: int = Field(
        default=3600, ge=0, description="Length of the betting phase of a new match"
    )

    # Rating
    elo_k_factor: int = Field(default=32, gt=0, description="Elo K-factor")
    rating_floor: int = Field(default=100, description="Lowest possible rating")
    rating_ceiling: int = Field(default=3000, description="Highest possible rating")

    # Matchmaking
    matchmaking_initial_band: int = Field(default=100, gt=0)
    matchmaking_band_step: int = Field(default=100, gt=0)
    matchmaking_max_band: int = Field(default=800, gt=0)

    # Training
    training_batch_size: int = Field(
        default=10, gt=0, description="Completed games analysed per training pass"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unknown log level: {value!r}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Return the (cached) settings instance."""
    return Settings()
