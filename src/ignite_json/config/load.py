from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError
from ruamel.yaml import YAML

from .model import Settings


class ConfigError(RuntimeError):
    pass


DEFAULT_CONFIG = Path("ignite-json.yaml")

_yaml = YAML(typ="safe")


def load_settings(base_dir: Path, config_path: Path | None = None) -> Settings:
    """Load settings from YAML.

    An explicit ``config_path`` must exist; the default file is optional and
    its absence yields the built-in defaults.
    """
    required = config_path is not None
    config_path = config_path or DEFAULT_CONFIG
    if not config_path.is_absolute():
        config_path = base_dir / config_path
    if not config_path.exists():
        if required:
            raise ConfigError(f"Missing config: {config_path}")
        return Settings()
    data = _load_yaml(config_path)
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError("Config must be a YAML mapping at the top level.")
    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _load_yaml(path: Path) -> Any:
    try:
        return _yaml.load(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to parse YAML: {path}") from exc
