"""Configuration loading helpers for feedwatch."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .models import FeedwatchConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_FILENAME = "config.yaml"
DB_FILENAME = "feedwatch.db"


def default_home() -> Path:
    env_root = os.environ.get("FEEDWATCH_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (Path.home() / ".feedwatch").resolve()


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text) if text.strip() else {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve the config file, database and log locations from the home directory."""

    home: Path | None = None
    config_path: Path | None = None
    db_path: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        root = (self.home or default_home()).resolve()
        self.home = root
        if self.config_path is None:
            self.config_path = root / CONFIG_FILENAME
        if self.db_path is None:
            env_db = os.environ.get("FEEDWATCH_DB_PATH")
            self.db_path = Path(env_db).expanduser() if env_db else root / "data" / DB_FILENAME
        self.logs_dir = root / "logs"
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.home, self.db_path.parent, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()

    @property
    def path(self) -> Path:
        return self.locator.config_path

    def load(self) -> FeedwatchConfig:
        path = self.path
        if path.suffix not in CONFIG_EXTENSIONS:
            raise ConfigError(
                f"Unsupported config format: {path}",
                hint=f"Use one of {', '.join(CONFIG_EXTENSIONS)}.",
            )
        if not path.exists():
            return FeedwatchConfig()
        try:
            payload = _read_file(path)
            return FeedwatchConfig.model_validate(payload)
        except (ValueError, yaml.YAMLError, ValidationError) as exc:
            raise ConfigError(
                f"Invalid configuration at {path}",
                str(exc),
                "Fix the file or remove it to start from an empty configuration.",
            ) from exc

    def save(self, config: FeedwatchConfig) -> Path:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        _write_file(path, config.model_dump(mode="json"))
        return path


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository", "default_home"]
