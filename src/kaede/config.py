"""Pydantic-validated config stored as TOML.

TOML loading uses ``tomllib`` (3.11+) with ``tomli`` fallback; writing uses
``tomli_w``. Path lists left unset fall back to the built-in search
locations in :mod:`kaede.apps`.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Literal

import tomli_w
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from kaede import apps
from kaede.base import CommitError, ConfigError
from kaede.overrides.base import atomic_write
from kaede.overrides.desktop import default_user_applications_dir

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or "~/.config"
    return Path(base).expanduser() / "kaede" / "config.toml"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class GeneralConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    command_timeout: float = 5.0

    @field_validator("command_timeout")
    @classmethod
    def _check_timeout(cls, v: float) -> float:
        if v < 0.5 or v > 60:
            msg = "command_timeout must be between 0.5 and 60"
            raise ValueError(msg)
        return v


class PathsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    application_dirs: list[Path] | None = None
    user_applications_dir: Path | None = None
    steam_roots: list[Path] | None = None
    heroic_config_dirs: list[Path] | None = None

    @field_validator("application_dirs", "steam_roots", "heroic_config_dirs")
    @classmethod
    def _expand_list(cls, v: list[Path] | None) -> list[Path] | None:
        return None if v is None else [p.expanduser() for p in v]

    @field_validator("user_applications_dir")
    @classmethod
    def _expand(cls, v: Path | None) -> Path | None:
        return None if v is None else v.expanduser()

    def search_dirs(self) -> list[Path]:
        return self.application_dirs if self.application_dirs is not None else apps.default_application_dirs()

    def user_dir(self) -> Path:
        return self.user_applications_dir or default_user_applications_dir()

    def steam_dirs(self) -> list[Path]:
        return self.steam_roots if self.steam_roots is not None else apps.default_steam_roots()

    def heroic_dirs(self) -> list[Path]:
        return self.heroic_config_dirs if self.heroic_config_dirs is not None else apps.default_heroic_dirs()


class FiltersConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    show_steam_apps: bool = True
    show_heroic_apps: bool = True
    show_flatpak_apps: bool = True


class Assignment(BaseModel):
    """Stored GPU choice for one application."""

    model_config = ConfigDict(extra="forbid")

    gpu: str
    api: Literal["opengl", "vulkan"] | None = None


class KaedeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    general: GeneralConfig = GeneralConfig()
    paths: PathsConfig = PathsConfig()
    filters: FiltersConfig = FiltersConfig()
    assignments: dict[str, Assignment] = {}


# ---------------------------------------------------------------------------
# Loading / saving
# ---------------------------------------------------------------------------


def load_config(path: Path | None = None) -> KaedeConfig:
    """Load config from *path*, the default location, or built-in defaults.

    Resolution order:
    1. Explicit *path* (error if missing or invalid).
    2. ``$XDG_CONFIG_HOME/kaede/config.toml`` (skip silently if absent).
    3. Built-in defaults.

    Raises :class:`ConfigError` on parse/validation failure.
    """
    if path is not None:
        return _load_from_path(path)

    default = default_config_path()
    if default.is_file():
        return _load_from_path(default)

    return KaedeConfig()


def _load_from_path(path: Path) -> KaedeConfig:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    try:
        data = tomllib.loads(raw.decode())
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    try:
        return KaedeConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Config validation error in {path}: {exc}") from exc


def dumps(config: KaedeConfig) -> str:
    data = config.model_dump(mode="json", exclude_none=True)
    data = {k: v for k, v in data.items() if v != {}}
    return tomli_w.dumps(data)


def save_config(config: KaedeConfig, path: Path | None = None) -> Path:
    """Write *config* to *path* (default location if ``None``) atomically."""
    path = path or default_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, dumps(config))
    except (OSError, CommitError) as exc:
        raise ConfigError(f"Cannot write config file {path}: {exc}") from exc
    logger.debug("Config saved to %s", path)
    return path
