"""Configuration loading utilities."""

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from .defaults import (
    CONFIG_DIR_NAME,
    CONFIG_FILENAMES,
    ENV_BACKEND_KEY,
    ENV_BACKEND_URL,
    ENV_CACHE_DIR,
)
from .main_config import Config

logger = logging.getLogger(__name__)


def strip_jsonc_comments(content: str) -> str:
    """
    Strip comments from JSONC content to convert to valid JSON.

    Handles:
    - Single-line comments: // comment
    - Multi-line comments: /* comment */

    URLs inside strings ("https://...") are left alone.
    """
    content = re.sub(r'("(?:\\.|[^"\\])*")|//.*?$', lambda m: m.group(1) or "", content, flags=re.MULTILINE)
    content = re.sub(r'("(?:\\.|[^"\\])*")|/\*.*?\*/', lambda m: m.group(1) or "", content, flags=re.DOTALL)
    return content


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a config file from the given path.

    Supports both .json and .jsonc files with comment stripping.

    Returns:
        Parsed config dictionary or None if the file doesn't exist or is invalid
    """
    if not path.exists():
        return None

    try:
        content = path.read_text()
        if path.suffix == ".jsonc":
            content = strip_jsonc_comments(content)
        return json.loads(content)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return None


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two configuration dictionaries; ``override`` wins."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def apply_env_overrides(config_data: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Overlay SUPABASE_URL, SUPABASE_ANON_KEY and TASKBOARD_CACHE_DIR when set."""
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    if env.get(ENV_BACKEND_URL):
        overrides.setdefault("backend", {})["url"] = env[ENV_BACKEND_URL]
    if env.get(ENV_BACKEND_KEY):
        overrides.setdefault("backend", {})["anon_key"] = env[ENV_BACKEND_KEY]
    if env.get(ENV_CACHE_DIR):
        overrides.setdefault("cache", {})["directory"] = env[ENV_CACHE_DIR]
    return merge_configs(config_data, overrides)


def load_config(project_root: Path | None = None, home: Path | None = None) -> Config:
    """
    Load configuration from multiple sources with precedence.

    1. Global: ~/.taskboard/taskboard.jsonc (lowest)
    2. Project-level: taskboard.jsonc or taskboard.json in the project root
    3. Environment variables (highest)
    """
    if project_root is None:
        project_root = Path.cwd()
    if home is None:
        home = Path.home()

    config_data = load_config_file(home / CONFIG_DIR_NAME / CONFIG_FILENAMES[0]) or {}

    for name in CONFIG_FILENAMES:
        project_config = load_config_file(project_root / name)
        if project_config:
            config_data = merge_configs(config_data, project_config)
            break

    return Config(**apply_env_overrides(config_data))


@lru_cache(maxsize=1)
def get_config(project_root: Path | None = None) -> Config:
    """
    Get cached configuration.

    To reload the config, clear the cache with get_config.cache_clear().
    """
    return load_config(project_root or Path.cwd())
