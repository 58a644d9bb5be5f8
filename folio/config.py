"""Configuration management for Folio."""

import json
from pathlib import Path

from pydantic import BaseModel


class ExecutionSettings(BaseModel):
    timeout_seconds: float = 5.0
    max_source_length: int = 10_000
    memory_limit_mb: int = 256
    language: str = "python"


class AutosaveSettings(BaseModel):
    enabled: bool = True
    idle_seconds: float = 3.0


class HistorySettings(BaseModel):
    max_depth: int = 100


class ActivitySettings(BaseModel):
    max_records: int = 50


class FolioConfig(BaseModel):
    execution: ExecutionSettings = ExecutionSettings()
    autosave: AutosaveSettings = AutosaveSettings()
    history: HistorySettings = HistorySettings()
    activity: ActivitySettings = ActivitySettings()


def _config_dir() -> Path:
    return Path.home() / ".folio"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def pages_dir() -> Path:
    """Return the directory where pages are persisted."""
    return _config_dir() / "pages"


def ensure_dirs() -> None:
    """Create required Folio directories."""
    _config_dir().mkdir(exist_ok=True)
    pages_dir().mkdir(exist_ok=True)


def load_config() -> FolioConfig:
    """Load config from ~/.folio/config.json, returning defaults if missing."""
    path = _config_path()
    if not path.exists():
        return FolioConfig()
    text = path.read_text()
    return FolioConfig.model_validate_json(text)


def save_config(config: FolioConfig) -> None:
    """Save config to ~/.folio/config.json."""
    ensure_dirs()
    path = _config_path()
    path.write_text(json.dumps(config.model_dump(), indent=2) + "\n")
