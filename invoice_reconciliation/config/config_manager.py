"""
Configuration manager for the invoice reconciliation engine.

Handles storage and retrieval of reconciliation settings and the exchange
rate API configuration as JSON files, and offers a logging setup helper
for scripts embedding the engine.
"""

import json
import time
from typing import Any, Dict, Optional, Union
from pathlib import Path

from invoice_reconciliation.models import (
    ConfigurationError, RateSourceConfig, ReconciliationSettings
)
from .validation import SettingsValidator

import logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Union[int, str] = logging.INFO):
    """
    Configure root logging for scripts using the engine.

    Args:
        level: Logging level name or number
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Reduce noise from HTTP connection pools
    logging.getLogger('urllib3').setLevel(logging.WARNING)


class ConfigManager:
    """
    Manages configuration storage and retrieval for the reconciliation engine.

    Settings and the rate source configuration are stored as separate JSON
    files in the configuration directory, each stamped with ``updated_at``.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory to store configuration files. If None, uses default.
        """
        self.logger = logging.getLogger(f"{__name__}.ConfigManager")

        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = Path.home() / '.invoice_reconciliation' / 'config'

        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.settings_file = self.config_dir / 'settings.json'
        self.rate_source_file = self.config_dir / 'rate_source.json'

        self.logger.info(f"Configuration manager initialized with directory: {self.config_dir}")

    def save_settings(self, settings: ReconciliationSettings) -> bool:
        """
        Save reconciliation settings.

        Args:
            settings: Settings to save

        Returns:
            True once saved

        Raises:
            ConfigurationError: If the file cannot be written
        """
        self._write_json(self.settings_file, settings.to_dict())
        self.logger.info("Saved reconciliation settings")
        return True

    def load_settings(self) -> ReconciliationSettings:
        """
        Load reconciliation settings.

        Returns:
            ReconciliationSettings instance (default if not found)

        Raises:
            ConfigurationError: If the stored file is unreadable, has unknown keys
                or holds invalid values
        """
        if not self.settings_file.exists():
            self.logger.info("No settings file found, using defaults")
            return ReconciliationSettings()

        settings_data = self._read_json(self.settings_file)
        try:
            settings = ReconciliationSettings.from_dict(settings_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid settings file {self.settings_file}: {e}") from e

        SettingsValidator().validate(settings).raise_if_invalid()
        return settings

    def save_rate_source_config(self, config: RateSourceConfig) -> bool:
        """Save the exchange rate API configuration."""
        self._write_json(self.rate_source_file, config.to_dict())
        self.logger.info(f"Saved rate source configuration: {config.api_url}")
        return True

    def load_rate_source_config(self) -> RateSourceConfig:
        """Load the exchange rate API configuration, falling back to the environment."""
        if not self.rate_source_file.exists():
            return RateSourceConfig.from_env()

        config_data = self._read_json(self.rate_source_file)
        try:
            config = RateSourceConfig(**config_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid rate source file {self.rate_source_file}: {e}") from e

        SettingsValidator().validate_rate_source(config).raise_if_invalid()
        return config

    def get_config_info(self) -> Dict[str, Any]:
        """Get information about the configuration files."""
        return {
            'config_dir': str(self.config_dir),
            'settings_file_exists': self.settings_file.exists(),
            'rate_source_file_exists': self.rate_source_file.exists()
        }

    def _write_json(self, path: Path, data: Dict[str, Any]):
        data = dict(data)
        data['updated_at'] = time.time()
        try:
            with open(path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            self.logger.error(f"Failed to write {path}: {e}")
            raise ConfigurationError(f"Failed to write {path}: {e}") from e

    def _read_json(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to read {path}: {e}")
            raise ConfigurationError(f"Failed to read {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a JSON object in {path}")

        # Remove metadata
        data.pop('updated_at', None)
        return data


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """
    Get the global configuration manager instance.

    Returns:
        Global ConfigManager instance
    """
    global _global_config_manager
    if _global_config_manager is None:
        _global_config_manager = ConfigManager()
    return _global_config_manager
