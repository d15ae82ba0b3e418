"""
Configuration loader for watch_history.

Everything the CLI does not take as a flag comes from one config.yaml:
where the export and the parsed-events cache live, how malformed records
are handled, extra timezone abbreviations for HTML exports, and logging.

Usage:
    from watch_history.config import cfg, get_data_file

    policy = cfg("parsing.record_policy", "skip")
    zones = cfg("parsing.extra_timezones", {})
    export = get_data_file()          # data/watch-history.html by default

Point WATCH_HISTORY_CONFIG at another file to override the search
(a .env file next to the project works too).
"""

import logging
import os
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from dotenv import load_dotenv

# WATCH_HISTORY_CONFIG / WATCH_HISTORY_LOG_LEVEL may live in .env
load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "WATCH_HISTORY_CONFIG"
CONFIG_NAME = "config.yaml"

# Checkout root, where the shipped config.yaml sits next to the package
PROJECT_ROOT = Path(__file__).parent.parent

_config: Optional[dict] = None
_config_path: Optional[Path] = None


def _candidate_files() -> Iterator[Path]:
    """Env var override, then the working directory, then the checkout."""
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        yield Path(env_path)
    yield Path.cwd() / CONFIG_NAME
    yield PROJECT_ROOT / CONFIG_NAME


def load_config(path: Optional[Path] = None) -> dict:
    """
    Load and cache config.yaml.

    Args:
        path: Explicit file. If None, the first existing file from
              WATCH_HISTORY_CONFIG, ./config.yaml, <project>/config.yaml

    Returns:
        Configuration dict (empty if no file was found, so every cfg()
        lookup falls back to its default)
    """
    global _config, _config_path

    if _config is not None and (path is None or Path(path) == _config_path):
        return _config

    if path is None:
        path = next((p for p in _candidate_files() if p.exists()), None)
    else:
        path = Path(path)

    if path is None or not path.exists():
        logger.warning("No config.yaml found, using defaults")
        _config, _config_path = {}, None
        return _config

    with open(path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        logger.warning(f"Ignoring {path}: top level is {type(loaded).__name__}, not a mapping")
        loaded = {}

    _config, _config_path = loaded, path
    logger.info(f"Loaded config from {path}")
    return _config


def get_config() -> dict:
    """Full configuration dict, loading it on first use."""
    if _config is None:
        load_config()
    return _config


def cfg(key: str, default: Any = None) -> Any:
    """
    Look up a dotted key such as "history.cache_file".

    Missing sections and keys, or a path running into a scalar
    ("history.use_cache.x"), give the default.
    """
    value: Any = get_config()
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def reload_config(path: Optional[Path] = None) -> dict:
    """Drop the cached config and read it again."""
    global _config
    _config = None
    return load_config(path)


# =============================================================================
# PATHS
# =============================================================================

def _resolve(path_value: str) -> Path:
    """Resolve a configured path relative to the project root."""
    path = Path(path_value)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path.resolve()


def get_data_dir() -> Path:
    """Get data directory path (resolved relative to project root)."""
    return _resolve(cfg("paths.data_dir", "./data"))


def get_data_file() -> Path:
    """Default export file, inside the data directory unless absolute."""
    data_file = Path(cfg("history.data_file", "watch-history.html"))
    if data_file.is_absolute():
        return data_file
    return get_data_dir() / data_file


def get_cache_file() -> Path:
    """Parsed-events cache, inside the data directory unless absolute."""
    cache_file = Path(cfg("history.cache_file", "cache.json"))
    if cache_file.is_absolute():
        return cache_file
    return get_data_dir() / cache_file


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(level: Optional[str] = None):
    """Configure logging from config.yaml settings."""
    log_config = get_config().get("logging", {})

    level = level or os.getenv("WATCH_HISTORY_LOG_LEVEL") or log_config.get("level", "INFO")
    fmt = log_config.get("format", "%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
    )
