# ZenSync Configuration Loader
# Locate, read, write and check the YAML configuration file

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from zensync.config.defaults import generate_default_config, get_default_config
from zensync.config.schema import ZenSyncConfig

CONFIG_ENV_VAR = "ZENSYNC_CONFIG"
SECTIONS = ("api", "storage", "sync", "output")


def get_config_path() -> Path:
    """Path of the configuration file; ZENSYNC_CONFIG overrides the default."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "zensync" / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> ZenSyncConfig:
    """
    Read and validate the configuration file.

    Sections or keys missing from the file take their default values.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a mapping or a value is invalid.
    """
    path = config_path or get_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}\nRun 'zensync config init' to create one.")
    data = _read_yaml(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return ZenSyncConfig.model_validate(_with_defaults(data))


def load_config_or_default(config_path: Optional[Path] = None) -> ZenSyncConfig:
    """Load the configuration file if present, else the built-in defaults."""
    path = config_path or get_config_path()
    if path.exists():
        return load_config(path)
    return ZenSyncConfig.model_validate(get_default_config())


def save_config(config: ZenSyncConfig, config_path: Optional[Path] = None) -> Path:
    """Write a configuration as plain YAML (enums as strings, unset keys omitted)."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(exclude_none=True, mode="json")
    text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    path.write_text(text, encoding="utf-8")
    return path


def ensure_config_exists(config_path: Optional[Path] = None) -> tuple[Path, bool]:
    """
    Write the commented default template unless a file is already there.

    Returns:
        Tuple of (config_path, was_created).
    """
    path = config_path or get_config_path()
    if path.exists():
        return path, False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_default_config(), encoding="utf-8")
    return path, True


def validate_config_file(config_path: Optional[Path] = None) -> tuple[bool, list[str]]:
    """
    Check a configuration file and collect readable problems.

    A missing API token counts as a problem even though the file itself
    parses, since no sync can run without one.

    Returns:
        Tuple of (is_valid, error_messages).
    """
    path = config_path or get_config_path()
    if not path.exists():
        return False, [f"Configuration file not found: {path}"]

    try:
        data = _read_yaml(path)
    except yaml.YAMLError as e:
        return False, [f"Invalid YAML syntax: {e}"]
    if data is None:
        return False, ["Configuration file is empty"]
    if not isinstance(data, dict):
        return False, ["Configuration root must be a mapping"]

    try:
        config = ZenSyncConfig.model_validate(_with_defaults(data))
    except ValidationError as e:
        return False, [f"{' -> '.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]

    if config.api.resolve_token() is None:
        return False, [f"No API token: set api.token or the {config.api.token_env} environment variable"]
    return True, []


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _with_defaults(data: dict) -> dict:
    """Overlay each section of the file on the default section."""
    merged = get_default_config()
    for section in SECTIONS:
        value = data.get(section)
        if isinstance(value, dict):
            merged[section] = {**merged[section], **value}
        elif section in data:
            merged[section] = value
    return merged
