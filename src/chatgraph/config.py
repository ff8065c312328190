"""Configuration management for chatgraph."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from chatgraph.exceptions import ConfigError
from chatgraph.models import TruncationStrategy

CHATGRAPH_DIR = ".chatgraph"
CONFIG_FILE = "config.json"
DB_FILE = "chatgraph.db"


class ContextDefaults(BaseModel):
    """Defaults applied when a conversation has no saved context settings."""

    auto_load_parent: bool = True
    auto_load_links: bool = False
    truncation_strategy: TruncationStrategy = TruncationStrategy.BALANCED
    budget_ratio: float = Field(default=0.7, gt=0, le=1)  # share of the model limit


class TokenConfig(BaseModel):
    """Token estimation settings."""

    default_limit: int = 4096
    model_limits: dict[str, int] = Field(default_factory=dict)  # merged over built-ins


class StorageConfig(BaseModel):
    db_file: str = DB_FILE


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    context: ContextDefaults = Field(default_factory=ContextDefaults)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Return the nearest directory at or above ``start`` holding a store dir."""
    here = (start or Path.cwd()).resolve()
    return next(
        (d for d in (here, *here.parents) if (d / CHATGRAPH_DIR).is_dir()),
        None,
    )


def get_chatgraph_dir(root: Path) -> Path:
    return root / CHATGRAPH_DIR


def get_config_path(root: Path) -> Path:
    return get_chatgraph_dir(root) / CONFIG_FILE


def get_db_path(root: Path, config: ProjectConfig) -> Path:
    return get_chatgraph_dir(root) / config.storage.db_file


def load_config(root: Path) -> ProjectConfig:
    """Read the project config, or defaults named after ``root`` if there is none.

    Raises:
        ConfigError: The file is not valid JSON or does not validate.
    """
    path = get_config_path(root)
    if not path.exists():
        return ProjectConfig(name=root.name, root_path=str(root))
    try:
        return ProjectConfig.model_validate_json(path.read_text())
    except ValidationError as e:
        raise ConfigError(f"Invalid config at {path}: {e}") from e


def save_config(root: Path, config: ProjectConfig) -> None:
    path = get_config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(indent=2))


def _check_key(key: str) -> list[str]:
    """Split a dotted key, checking each part against the config models."""
    parts = key.split(".")
    model: type[BaseModel] = ProjectConfig
    for depth, part in enumerate(parts):
        field = model.model_fields.get(part)
        if field is None:
            raise KeyError(f"Invalid config key: {key}")
        if depth == len(parts) - 1:
            break
        section = field.annotation
        if not (isinstance(section, type) and issubclass(section, BaseModel)):
            raise KeyError(f"Invalid config key: {key}")
        model = section
    return parts


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Return a copy of ``config`` with the dotted ``key`` set to ``value``.

    Raises:
        KeyError: ``key`` does not name a config field.
        ConfigError: ``value`` does not validate for that field.
    """
    *sections, name = _check_key(key)
    data = config.model_dump(mode="json")
    target = data
    for section in sections:
        target = target[section]
    target[name] = value
    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e
