"""User configuration for the envsense presentation layer.

Lookup order:

    1. ``$ENVSENSE_CONFIG``
    2. ``$XDG_CONFIG_HOME/envsense/config.toml``
    3. the OS-conventional config directory

Configuration only affects how results are presented and how strictly
``check`` treats unknown fields.  It never changes what is detected.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ValidationError

try:
    import tomllib  # type: ignore[import-not-found]
except ImportError:
    import tomli as tomllib  # type: ignore[import-not-found, no-redef]

logger = logging.getLogger(__name__)

APP_NAME = "envsense"
CONFIG_FILENAME = "config.toml"
CONFIG_ENV_VAR = "ENVSENSE_CONFIG"


class ErrorHandling(BaseModel):
    strict_mode: bool = True
    show_usage_on_error: bool = True


class OutputFormatting(BaseModel):
    context_descriptions: bool = True
    nested_display: bool = True
    rainbow_colors: bool = True


class EnvsenseConfig(BaseModel):
    error_handling: ErrorHandling = ErrorHandling()
    output_formatting: OutputFormatting = OutputFormatting()

    @classmethod
    def load(cls, env: Mapping[str, str] | None = None) -> EnvsenseConfig:
        """Load the user config, falling back to defaults on any problem."""
        path = config_path(env)
        if path is None or not path.is_file():
            return cls()
        return cls.from_file(path)

    @classmethod
    def from_file(cls, path: Path) -> EnvsenseConfig:
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("ignoring unreadable config %s: %s", path, exc)
            return cls()
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            logger.warning("ignoring invalid config %s: %s", path, exc.errors()[0].get("msg", exc))
            return cls()


def config_path(env: Mapping[str, str] | None = None) -> Path | None:
    env = os.environ if env is None else env
    explicit = env.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser()
    xdg = env.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME / CONFIG_FILENAME
    return default_config_dir(env) / CONFIG_FILENAME


def default_config_dir(env: Mapping[str, str]) -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    if sys.platform.startswith("win"):
        appdata = env.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / APP_NAME
    return Path.home() / ".config" / APP_NAME
