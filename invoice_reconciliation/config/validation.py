"""
Settings validation utilities.

Checks reconciliation settings against their documented ranges and reports
errors, warnings and suggestions before an engine is built from them.
"""

from typing import Dict, List, Any
from dataclasses import dataclass, field

from invoice_reconciliation.models import (
    ConfigurationError, PairingStrategyType, RateSourceConfig, ReconciliationSettings
)

import logging
logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of settings validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning message."""
        self.warnings.append(message)

    def add_suggestion(self, message: str):
        """Add a suggestion message."""
        self.suggestions.append(message)

    def raise_if_invalid(self) -> 'ValidationResult':
        """
        Raise when any error was recorded.

        Returns:
            This result, for chaining

        Raises:
            ConfigurationError: Carrying every error message in its details
        """
        if not self.is_valid:
            raise ConfigurationError(f"Invalid settings: {'; '.join(self.errors)}", self.to_dict())
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'suggestions': self.suggestions
        }


class SettingsValidator:
    """Validates reconciliation settings with detailed error reporting."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.SettingsValidator")

    def validate(self, settings: ReconciliationSettings) -> ValidationResult:
        """
        Validate reconciliation settings.

        Args:
            settings: Settings to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult()

        # Thresholds are fractions
        for name in ('description_threshold', 'confidence_threshold'):
            value = getattr(settings, name)
            if not self._is_number(value) or not (0.0 <= value <= 1.0):
                result.add_error(f"{name} must be between 0.0 and 1.0, got {value!r}")

        # Tolerances are percentages
        for name in ('price_tolerance_pct', 'quantity_tolerance_pct'):
            value = getattr(settings, name)
            if not self._is_number(value) or not (0.0 <= value <= 100.0):
                result.add_error(f"{name} must be between 0 and 100, got {value!r}")
            elif value > 20:
                result.add_warning(f"{name} of {value}% is unusually permissive")

        if not self._is_number(settings.warning_band_pct) or settings.warning_band_pct < 0:
            result.add_error(f"warning_band_pct must be non-negative, got {settings.warning_band_pct!r}")

        if not self._is_number(settings.rate_cache_ttl_seconds) or settings.rate_cache_ttl_seconds <= 0:
            result.add_error(f"rate_cache_ttl_seconds must be positive, got {settings.rate_cache_ttl_seconds!r}")
        elif settings.rate_cache_ttl_seconds > 86400:
            result.add_warning("Exchange rates cached for more than a day may be stale")

        if not isinstance(settings.max_alternatives, int) or isinstance(settings.max_alternatives, bool) \
                or settings.max_alternatives < 0:
            result.add_error(f"max_alternatives must be a non-negative integer, got {settings.max_alternatives!r}")

        strategies = [s.value for s in PairingStrategyType]
        if settings.pairing_strategy not in strategies:
            result.add_error(f"pairing_strategy must be one of {strategies}, got {settings.pairing_strategy!r}")

        # Cross-field checks only make sense on otherwise valid numbers
        if result.is_valid:
            if settings.confidence_threshold < settings.description_threshold * 0.4:
                result.add_warning("confidence_threshold is low enough to admit candidates "
                                   "matched on description alone")
            if settings.pairing_strategy == PairingStrategyType.GREEDY.value:
                result.add_suggestion("Use the 'optimal' pairing strategy when invoices repeat similar "
                                      "line item descriptions")

        if not result.is_valid:
            self.logger.warning(f"Settings validation failed with {len(result.errors)} errors")

        return result

    def validate_rate_source(self, config: RateSourceConfig) -> ValidationResult:
        """
        Validate exchange rate API configuration.

        Args:
            config: Rate source configuration

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult()

        if not config.api_url:
            result.add_error("Exchange rate API URL is required")
        elif not config.api_url.startswith(('http://', 'https://')):
            result.add_error("Exchange rate API URL must start with http:// or https://")
        else:
            if config.api_url.startswith('http://'):
                result.add_warning("HTTPS is recommended for the exchange rate API")
            if not config.api_url.endswith('/'):
                result.add_suggestion("The base currency is appended to the API URL; "
                                      "it usually needs a trailing '/'")

        if not self._is_number(config.timeout) or config.timeout <= 0:
            result.add_error(f"Timeout must be positive, got {config.timeout!r}")
        elif config.timeout > 60:
            result.add_warning("Timeout over 60 seconds will block reconciliation for a long time")

        return result

    def _is_number(self, value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
