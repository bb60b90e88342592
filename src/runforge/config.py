"""Lightweight configuration for the runforge tools."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, overridable through ``RUNFORGE_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="RUNFORGE_", env_file=".env", env_file_encoding="utf-8"
    )

    content_root: Path = Field(default=Path("content"), description="Root of the rule files")
    state_dir: Path = Field(
        default=Path("state"), description="Session root holding run_state.json and its backup"
    )
    enforce_constraints: bool = Field(
        default=False,
        description="Re-roll slots that would violate a hard constraint instead of only reporting it",
    )
    max_team_count: int = Field(default=8, ge=2, description="Largest allowed team count")


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
