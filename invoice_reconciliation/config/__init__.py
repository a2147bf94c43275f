"""
Configuration management for the invoice reconciliation engine.

Provides JSON storage of reconciliation settings, settings validation and
a logging setup helper.
"""

from .config_manager import ConfigManager, configure_logging, get_config_manager
from .validation import SettingsValidator, ValidationResult

__all__ = [
    "ConfigManager",
    "configure_logging",
    "get_config_manager",
    "SettingsValidator",
    "ValidationResult"
]
