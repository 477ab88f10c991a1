from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .models import FailurePolicy

CONFIG_FILENAME = "infonav.yml"


def _default_directories() -> list[Path]:
    candidates = [
        Path(sys.prefix) / "share" / "info",
        Path("/usr/local/share/info"),
        Path("/usr/share/info"),
        Path("/usr/local/info"),
        Path("/usr/info"),
    ]
    unique: list[Path] = []
    for candidate in candidates:
        if candidate not in unique:
            unique.append(candidate)
    return unique


class SearchPathConfig(BaseModel):
    """Directories searched when a manual name is not a path."""

    directories: list[Path] = Field(
        default_factory=list,
        description="Explicit directories searched before the defaults.",
    )
    additional_directories: list[Path] = Field(
        default_factory=list,
        description="Directories appended after the defaults.",
    )
    default_directories: list[Path] = Field(
        default_factory=_default_directories,
        description="Directories derived from the install layout.",
    )
    use_environment: bool = Field(
        default=True,
        description="Honor the INFOPATH environment variable.",
    )
    long_file_names: bool = Field(
        default=True,
        description="When false, also try 8.3 truncated file names.",
    )

    @field_validator("directories", "additional_directories", "default_directories", mode="before")
    def _ensure_paths(cls, value: Any) -> list[Path]:
        if value is None:
            return []
        if isinstance(value, (str, Path)):
            value = [value]
        return [Path(item) for item in value]


class NavigationConfig(BaseModel):
    """History and failure handling for interactive navigation."""

    skip_intermediate: bool = Field(
        default=True,
        description="Record internally chained hops as a single history jump.",
    )
    history_limit: int = Field(default=256, ge=1, description="Maximum entries per history stack.")
    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.RAISE,
        description="What to do when a requested node does not exist.",
    )


class IndexConfig(BaseModel):
    """Options for index and apropos searches."""

    apropos_manuals: list[str] | None = Field(
        default=None,
        description="Manuals searched by apropos; defaults to every manual listed in dir.",
    )


class FinderConfig(BaseModel):
    """Keyword groups exposed by the finder view in addition to dir sections."""

    keywords: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("keywords", mode="before")
    def _normalize_keywords(cls, value: Any) -> dict[str, list[str]]:
        if not value:
            return {}
        normalized: dict[str, list[str]] = {}
        for key, manuals in dict(value).items():
            if isinstance(manuals, str):
                manuals = [manuals]
            normalized[str(key).strip()] = [str(item).strip() for item in manuals]
        return normalized


class Config(BaseModel):
    search_path: SearchPathConfig = Field(default_factory=SearchPathConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    finder: FinderConfig = Field(default_factory=FinderConfig)
    log_level: str = Field(default="WARNING")

    @field_validator("log_level")
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'.")
        return level


def load_config(path: str | Path) -> Config:
    """Load configuration and resolve relative paths based on the config location.

    The ``path`` argument may point to a file (e.g., ``/docs/infonav.yml``) or a
    directory containing that file. Relative directories inside the
    configuration are interpreted relative to the directory holding the config
    file.
    """
    candidate = Path(path)
    data: dict[str, Any] = {}
    base_dir: Path
    if candidate.is_dir():
        # A directory without a config file falls back to defaults.
        config_file = candidate / CONFIG_FILENAME
        if config_file.exists():
            with config_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        base_dir = candidate.resolve()
    else:
        if not candidate.exists():
            raise FileNotFoundError(candidate)
        with candidate.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        base_dir = candidate.parent.resolve()

    if not isinstance(data, dict):
        raise ValueError(f"Configuration in {candidate} must be a mapping.")

    cfg = Config(**data)

    def _abs(value: Path) -> Path:
        expanded = value.expanduser()
        return expanded if expanded.is_absolute() else (base_dir / expanded).resolve()

    search = cfg.search_path
    search.directories = [_abs(item) for item in search.directories]
    search.additional_directories = [_abs(item) for item in search.additional_directories]
    search.default_directories = [_abs(item) for item in search.default_directories]

    return cfg
