"""
Exchange rate sources for currency conversion.

This package provides:
- The abstract rate source contract
- A REST API source built on requests
- A fixed-table source for offline runs
"""

from .base_connector import BaseRateSource
from .api_connector import ExchangeRateAPIConnector
from .static_source import StaticRateSource

__all__ = [
    "BaseRateSource",
    "ExchangeRateAPIConnector",
    "StaticRateSource"
]
