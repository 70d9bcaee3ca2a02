"""Configuration management - loading, validation, and persistence."""

from enum import Enum
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import DownloadSorterConfig

USER_CONFIG_PATH = Path.home() / ".config" / "downloadsorter" / "config.yaml"


class ConfigManager:
    """Reads and writes the YAML config file of one DownloadSorter install."""

    DEFAULT_CONFIG_LOCATIONS = [
        Path("config/default_config.yaml"),
        USER_CONFIG_PATH,
        Path.home() / ".downloadsorter" / "config.yaml",
    ]

    def __init__(self, config_path: Path | None = None):
        """
        Args:
            config_path: Explicit config file. The default locations are
                searched when it is None or does not exist.
        """
        self.config_path = config_path
        self._config: DownloadSorterConfig | None = None

    def load(self, create_if_missing: bool = False) -> DownloadSorterConfig:
        """
        Load and validate the config file.

        Args:
            create_if_missing: Fall back to the built-in defaults when no
                file is found.

        Raises:
            FileNotFoundError: If no file is found and create_if_missing is False
            ValueError: If the file is not YAML or fails validation
        """
        config_file = self._find_config_file()

        if config_file is None:
            if not create_if_missing:
                raise FileNotFoundError(
                    f"No configuration file found. Searched: {self.DEFAULT_CONFIG_LOCATIONS}"
                )
            self._config = DownloadSorterConfig()
            return self._config

        try:
            with open(config_file, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            self._config = DownloadSorterConfig(**raw)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {config_file}: {e}") from e
        except ValidationError as e:
            raise ValueError(f"Invalid configuration in {config_file}: {e}") from e

        self.config_path = config_file
        return self._config

    def save(self, config: DownloadSorterConfig | None = None, path: Path | None = None):
        """
        Write a config as plain YAML.

        Args:
            config: Config to write; the last loaded one when None
            path: Target file; the current config_path, then the per-user
                location, when None
        """
        config = config or self._config
        if config is None:
            raise ValueError("No configuration to save")

        save_path = path or self.config_path or USER_CONFIG_PATH
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                _to_yaml_scalars(config.model_dump(mode="python")),
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )

        self.config_path = save_path
        self._config = config

    def _find_config_file(self) -> Path | None:
        if self.config_path and self.config_path.exists():
            return self.config_path
        return next((location for location in self.DEFAULT_CONFIG_LOCATIONS if location.exists()), None)


def _to_yaml_scalars(value):
    """Turn paths and policy enums into strings so safe_dump accepts them."""
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _to_yaml_scalars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_yaml_scalars(item) for item in value]
    return value


# Shared by the CLI commands of one process
_config_manager: ConfigManager | None = None


def get_config_manager(config_path: Path | None = None) -> ConfigManager:
    """
    Get the process-wide config manager.

    A new manager replaces the cached one when a different config_path is
    asked for.
    """
    global _config_manager
    if _config_manager is None or (
        config_path is not None and config_path != _config_manager.config_path
    ):
        _config_manager = ConfigManager(config_path)
    return _config_manager
