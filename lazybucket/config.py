from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError
from .navigation import KeyMap

logger = logging.getLogger(__name__)

PROFILE_ENV = "AWS_PROFILE"
ENDPOINT_ENV = "AWS_ENDPOINT_URL"
LOG_FILE_ENV = "LAZYBUCKET_LOG_FILE"


def config_base_dir() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        base = Path(config_home).expanduser()
    else:
        base = Path.home() / ".config"
    return base / "lazybucket"


def default_config_path() -> Path:
    return config_base_dir() / "config.json"


def read_app_config(path: Optional[Path] = None) -> dict[str, object]:
    config_path = path or default_config_path()
    try:
        payload = json.loads(config_path.read_text())
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable config %s: %s", config_path, exc)
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def load_keymap(path: Optional[Path] = None) -> KeyMap:
    payload = read_app_config(path)
    section = payload.get("keybindings")
    if not isinstance(section, dict):
        return KeyMap()
    return KeyMap().with_overrides(section)


def resolve_profile(
    flag_value: Optional[str], environ: Optional[Mapping[str, str]] = None
) -> str:
    env = os.environ if environ is None else environ
    for value in (flag_value, env.get(PROFILE_ENV)):
        if value and value.strip():
            return value.strip()
    raise ConfigurationError(
        "Error: an AWS profile is required.",
        hints=(
            "Please provide it using one of the following methods:",
            "1. Command line flag: lazybucket --profile=your-profile",
            f"2. Environment variable: export {PROFILE_ENV}=your-profile",
        ),
    )
