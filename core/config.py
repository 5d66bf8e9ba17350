"""Configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigValidationError
from schemas.config import SourcesFile


class Settings(BaseSettings):
    """Application settings from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Configuration files
    sources_path: str = "config/sources.yaml"

    # Storage
    results_dir: str = "./data/collection-results"
    snapshots_dir: str = "./data/scraper-snapshots"
    notifications_dir: str = "./data/change-notifications"
    jobs_path: str = "./data/jobs.json"

    # Notifications
    notification_webhook_url: str | None = None

    # Runtime
    log_level: str = "INFO"
    log_json: bool = False
    timezone: str = "Europe/Stockholm"
    run_initial_collection: bool = False
    enable_lifecycle_jobs: bool = False

    user_agent: str = "JobCollector/1.0 (+https://arbetsformedlingen.se)"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> str:
        return str(v).strip().upper() or "INFO"


def load_sources_config(path: Path) -> SourcesFile:
    """Load sources configuration from a YAML file.

    ``${VAR}`` placeholders are expanded from the environment before parsing,
    so credentials can stay out of the file.

    Raises:
        ConfigValidationError: On malformed YAML or schema violations.
    """
    if not path.exists():
        return SourcesFile()

    raw = os.path.expandvars(path.read_text(encoding="utf-8"))

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in {path}: {e}") from e

    try:
        return SourcesFile.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Invalid sources configuration in {path}",
            errors=[dict(err) for err in e.errors(include_url=False)],
        ) from e


def load_config(
    sources_path: Path | None = None,
    settings: Settings | None = None,
) -> tuple[Settings, SourcesFile]:
    """Load all configuration.

    Returns:
        Tuple of (Settings, SourcesFile)
    """
    settings = settings or Settings()
    sources_path = sources_path or Path(settings.sources_path)
    sources = load_sources_config(sources_path)

    return settings, sources
