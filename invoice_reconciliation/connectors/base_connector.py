"""
Base interface for exchange rate sources.

Provides the common contract and logging helpers for every source the
currency converter can fetch rates from.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, Union

from invoice_reconciliation.models import CurrencyCode, ExchangeRate, RateFetchError

logger = logging.getLogger(__name__)


class BaseRateSource(ABC):
    """
    Abstract base class for exchange rate sources.

    Implementations fetch a single rate and raise RateFetchError on any
    failure. They are not expected to cache; caching belongs to the
    currency converter.
    """

    def __init__(self, source_id: str):
        """
        Initialize base rate source.

        Args:
            source_id: Identifier used in log messages
        """
        self.source_id = source_id
        self.logger = logging.getLogger(f"{__name__}.{source_id}")
        self.fetch_count = 0

    @abstractmethod
    def fetch_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode,
                   as_of: Optional[date] = None) -> ExchangeRate:
        """
        Fetch the rate converting ``from_currency`` into ``to_currency``.

        Args:
            from_currency: Source currency
            to_currency: Target currency
            as_of: Date of the rate, or None for the latest rate

        Returns:
            ExchangeRate with a positive rate

        Raises:
            RateFetchError: If the rate cannot be obtained
        """
        pass

    def _log_operation(self, operation: str, duration: float, success: bool,
                       details: Optional[str] = None):
        """
        Log rate source operation with timing and status.

        Args:
            operation: Name of the operation
            duration: Time taken in seconds
            success: Whether operation succeeded
            details: Additional details to log
        """
        status = "SUCCESS" if success else "FAILED"
        message = f"{operation} {status} in {duration:.3f}s"

        if details:
            message += f" - {details}"

        if success:
            self.logger.info(message)
        else:
            self.logger.error(message)

    def _handle_error(self, operation: str, error: Union[Exception, str], started_at: float) -> RateFetchError:
        """
        Log a failure and wrap it in a RateFetchError.

        Args:
            operation: Name of the operation that failed
            error: The original exception or a description of the failure
            started_at: ``time.time()`` when the operation started

        Returns:
            RateFetchError with appropriate message
        """
        error_msg = f"{operation} failed for rate source '{self.source_id}': {error}"
        self._log_operation(operation, time.time() - started_at, False, str(error))
        return RateFetchError(error_msg, {'source': self.source_id})
