"""Configuration file loading and saving with schema validation."""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError
from .models import RepositoryEntry
from .repository.urls import APP_NAME

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0"
CONFIG_FILENAME = "config.yaml"
CONFIG_PATH_ENV = "RULEM_CONFIG_PATH"

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "rulem configuration",
    "type": "object",
    "properties": {
        "version": {"type": "string"},
        "init_time": {"type": "integer"},
        "repositories": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string"},
                    "type": {"enum": ["local", "github"]},
                    "created_at": {"type": "integer"},
                    "path": {"type": "string"},
                    "remote_url": {"type": "string"},
                    "branch": {"type": "string"},
                    "last_sync_time": {"type": "integer"},
                },
                "required": ["id", "name", "type", "created_at", "path"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["repositories"],
}

_ID_SANITIZE_PATTERN = re.compile(r"[^a-z0-9]+")


class Config(BaseModel):
    """The user's configuration: an ordered list of central repositories."""

    version: str = Field(default=CONFIG_VERSION, description="Config format version")
    init_time: int = Field(default=0, description="Unix timestamp of the first save")
    repositories: list[RepositoryEntry] = Field(
        default_factory=list,
        description="Configured central repositories, in display order",
    )

    def find_repository(self, id_or_name: str) -> RepositoryEntry | None:
        """Find a repository by exact id, or by name ignoring case."""
        for entry in self.repositories:
            if entry.id == id_or_name:
                return entry
        key = id_or_name.strip().casefold()
        for entry in self.repositories:
            if entry.name.strip().casefold() == key:
                return entry
        return None

    def add_repository(self, entry: RepositoryEntry) -> None:
        """Append a repository.

        Raises:
            ConfigError: If the id or name is already taken
        """
        if any(existing.id == entry.id for existing in self.repositories):
            msg = f"repository ID already exists: {entry.id}"
            raise ConfigError(msg)
        key = entry.name.strip().casefold()
        if any(existing.name.strip().casefold() == key for existing in self.repositories):
            msg = f"repository name already exists: {entry.name}"
            raise ConfigError(msg)
        self.repositories.append(entry)

    def remove_repository(self, id_or_name: str) -> RepositoryEntry:
        """Remove and return a repository.

        Raises:
            ConfigError: If no repository matches
        """
        entry = self.find_repository(id_or_name)
        if entry is None:
            msg = f"repository not found: {id_or_name}"
            raise ConfigError(msg)
        self.repositories.remove(entry)
        return entry

    def to_document(self) -> dict[str, Any]:
        """Plain data for YAML output, without absent optional fields."""
        return {
            "version": self.version,
            "init_time": self.init_time,
            "repositories": [
                entry.model_dump(mode="json", exclude_none=True) for entry in self.repositories
            ],
        }


def config_path() -> Path:
    """Location of the configuration file.

    ``$RULEM_CONFIG_PATH`` wins; otherwise ``config.yaml`` in the platform
    configuration directory.
    """
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        logger.debug("Using config path from environment: %s", override)
        return Path(override)
    return Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME


def load_config(path: Path | None = None) -> Config:
    """Load and validate the configuration file.

    Args:
        path: Config file (default: ``config_path()``)

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    path = path or config_path()
    if not path.exists():
        msg = f"no configuration found at {path}: add a repository first"
        raise ConfigError(msg, details={"path": str(path)}, code="config-missing")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Failed to parse config YAML: {e}"
        raise ConfigError(msg, details={"path": str(path)}) from e
    except OSError as e:
        msg = f"Failed to read config file: {e}"
        raise ConfigError(msg, details={"path": str(path)}) from e

    if data is None:
        data = {"repositories": []}

    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        msg = f"Schema validation failed: {e.message}"
        raise ConfigError(msg, details={"path": list(e.absolute_path)}) from e

    if data.get("repositories") is None:
        data["repositories"] = []

    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        msg = f"Config validation failed: {e}"
        raise ConfigError(msg, details={"path": str(path)}) from e

    logger.debug("Loaded %d repositories from %s", len(config.repositories), path)
    return config


def save_config(config: Config, path: Path | None = None) -> Path:
    """Write the configuration file with owner-only permissions.

    Stamps ``init_time`` on the first save.

    Returns:
        The path written

    Raises:
        ConfigError: If the file cannot be written
    """
    path = path or config_path()
    if config.init_time == 0:
        config.init_time = int(time.time())

    try:
        path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_document(), f, sort_keys=False, allow_unicode=True)
    except OSError as e:
        msg = f"Failed to write config file: {e}"
        raise ConfigError(msg, details={"path": str(path)}) from e

    logger.debug("Saved configuration to %s", path)
    return path


def generate_repository_id(name: str, timestamp: int | None = None) -> str:
    """Build a ``<slug>-<timestamp>`` repository id from a display name."""
    if timestamp is None:
        timestamp = int(time.time())
    slug = _ID_SANITIZE_PATTERN.sub("-", name.lower()).strip("-") or "repo"
    return f"{slug}-{timestamp}"
