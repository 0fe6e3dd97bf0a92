"""Configuration loading for the journal store.

Settings are resolved in three layers, later layers winning:
1. Defaults on StoreConfig
2. A config file (.toml or .json), explicit or discovered
3. JRNLG_* environment variables
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

ENV_STORAGE_PATH = "JRNLG_STORAGE_PATH"
ENV_LOG_LEVEL = "JRNLG_LOG_LEVEL"
ENV_MAX_PARSE_WORKERS = "JRNLG_MAX_PARSE_WORKERS"
ENV_PARALLEL_PARSE = "JRNLG_PARALLEL_PARSE"

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def _default_storage_path() -> Path:
    return Path.home() / ".jrnlg" / "entries"


def _default_workers() -> int:
    return os.cpu_count() or 1


@dataclass
class StoreConfig:
    """Configuration for a journal store."""

    # Root of the YYYY/MM/ entry tree
    storage_path: Path = field(default_factory=_default_storage_path)

    # Parsing worker pool
    parallel_parse: bool = True
    max_parse_workers: int = field(default_factory=_default_workers)

    # Seconds to wait for the store's write lock
    lock_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def worker_count(self) -> int:
        """Effective pool size: 1 when parallel parsing is disabled."""
        if not self.parallel_parse:
            return 1
        return max(1, self.max_parse_workers)


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _parse_level(value: str) -> str:
    level = value.strip().upper()
    if level == "WARN":
        level = "WARNING"
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value!r}. Expected one of {list(LOG_LEVELS)}")
    return level


def dict_to_config(data: dict[str, Any], base: Optional[StoreConfig] = None) -> StoreConfig:
    """Apply a config file dictionary on top of ``base`` (or defaults)."""
    config = base or StoreConfig()

    if "storage" in data:
        storage = data["storage"]
        if "path" in storage:
            config.storage_path = Path(storage["path"]).expanduser()
        if "lock_timeout" in storage:
            config.lock_timeout = float(storage["lock_timeout"])

    if "parsing" in data:
        parsing = data["parsing"]
        if "parallel" in parsing:
            config.parallel_parse = _parse_bool(parsing["parallel"])
        if "max_workers" in parsing:
            config.max_parse_workers = int(parsing["max_workers"])

    if "logging" in data:
        logging_ = data["logging"]
        if "level" in logging_:
            config.log_level = _parse_level(logging_["level"])
        if "file" in logging_:
            config.log_file = logging_["file"]

    return config


def apply_environment(config: StoreConfig, environ: Optional[Mapping[str, str]] = None) -> StoreConfig:
    """Override config values from JRNLG_* environment variables."""
    env = os.environ if environ is None else environ

    if env.get(ENV_STORAGE_PATH):
        config.storage_path = Path(env[ENV_STORAGE_PATH]).expanduser()
    if env.get(ENV_LOG_LEVEL):
        config.log_level = _parse_level(env[ENV_LOG_LEVEL])
    if env.get(ENV_MAX_PARSE_WORKERS):
        config.max_parse_workers = int(env[ENV_MAX_PARSE_WORKERS])
    if env.get(ENV_PARALLEL_PARSE):
        config.parallel_parse = _parse_bool(env[ENV_PARALLEL_PARSE])

    return config


def find_config_file(directory: Path) -> Optional[Path]:
    """Find configuration file in a directory.

    Search order:
    1. jrnlg.toml
    2. jrnlg.json
    3. .jrnlg.toml
    4. .jrnlg.json
    """
    candidates = [
        "jrnlg.toml",
        "jrnlg.json",
        ".jrnlg.toml",
        ".jrnlg.json",
    ]

    for name in candidates:
        path = directory / name
        if path.exists():
            return path

    return None


def load_config(
    config_path: Optional[Path] = None,
    search_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> StoreConfig:
    """Load store configuration.

    Args:
        config_path: Optional explicit path to config file
        search_dir: Directory searched when no explicit path is given
            (defaults to the current directory)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        StoreConfig instance

    Raises:
        ValueError: If the config file type is unsupported or a value is invalid
    """
    if config_path is None:
        config_path = find_config_file(search_dir or Path.cwd())

    config = StoreConfig()

    if config_path is not None:
        suffix = config_path.suffix.lower()
        if suffix == ".toml":
            config = dict_to_config(load_toml_config(config_path), config)
        elif suffix == ".json":
            config = dict_to_config(load_json_config(config_path), config)
        else:
            raise ValueError(f"Unsupported config file type: {suffix}")

    return apply_environment(config, environ)
