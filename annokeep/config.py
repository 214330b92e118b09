"""
Configuration management for annotation stores.

The configuration is stored as a TOML file in the store directory.
It names the settings file and the save debounce delay.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w


CONFIG_FILENAME = "annokeep.toml"
CONFIG_VERSION = 1

DEFAULT_SETTINGS_FILE = "data.json"
DEFAULT_DEBOUNCE_SECONDS = 1.0


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    settings_file: str = DEFAULT_SETTINGS_FILE
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_config_dir() -> Path:
    """Store directory: ANNOKEEP_STORE_PATH, else ~/.annokeep."""
    env = os.environ.get("ANNOKEEP_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".annokeep"


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    store = data.get("store", {})

    # Validate version
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    settings_file = store.get("settings_file", DEFAULT_SETTINGS_FILE)
    if not isinstance(settings_file, str) or not settings_file:
        raise ValueError(f"Invalid settings_file in {config_path}: {settings_file!r}")

    debounce = store.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)) or debounce < 0:
        raise ValueError(f"Invalid debounce_seconds in {config_path}: {debounce!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        settings_file=settings_file,
        debounce_seconds=float(debounce),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "settings_file": config.settings_file,
            "debounce_seconds": config.debounce_seconds,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
