"""Configuration utilities and settings helpers for the trust engine."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .tables import ScoringTables, load_scoring_tables


class Settings(BaseSettings):
    """Runtime settings loaded from environment/.env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Rule / lexicon / table sources
    rules_path: Path = Field(default=Path("configs/rules.yaml"), alias="TRUST_RULES_PATH")
    rules_mode: str = Field(default="warn", pattern="^(warn|strict)$", alias="TRUST_RULES_MODE")
    lexicon_path: Path = Field(default=Path("configs/lexicon.yaml"), alias="TRUST_LEXICON_PATH")
    scoring_path: Path = Field(default=Path("configs/scoring.yaml"), alias="TRUST_SCORING_PATH")

    # Reputation decay
    reputation_decay_days: float = Field(default=180.0, gt=0, alias="TRUST_REPUTATION_DECAY_DAYS")
    max_rating: float = Field(default=5.0, gt=0, alias="TRUST_MAX_RATING")

    # Storage / concurrency
    store_db_path: Path = Field(default=Path("data/trust.db"), alias="TRUST_DB_PATH")
    max_upsert_attempts: int = Field(default=3, ge=1, alias="TRUST_MAX_UPSERT_ATTEMPTS")

    def load_tables(self) -> ScoringTables:
        """Build scoring tables from defaults plus the configured overrides file."""

        return load_scoring_tables(self.scoring_path)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings", "ScoringTables", "load_scoring_tables"]
