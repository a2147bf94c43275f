"""
Invoice Reconciliation Engine

Matches supplier invoices against candidate purchase orders, scoring line
items on description, quantity and price with cross-currency support, and
gates the chosen match with configurable tolerance rules.

This package provides:
- Core data models and the exception hierarchy
- Text similarity and line item scoring
- Candidate ranking with pluggable line item pairing
- Exchange rate sources, a TTL rate cache and currency conversion
- Tolerance rule evaluation
- Configuration management and validation
"""

from .models import (
    # Core data models
    Money,
    LineItem,
    InvoiceLineItem,
    PurchaseOrderLineItem,
    Supplier,
    Invoice,
    PurchaseOrder,
    ExchangeRate,

    # Result models
    MatchScore,
    MatchCandidate,
    MatchResult,
    RuleResult,
    EvaluationResult,
    ReconciliationContext,

    # Configuration models
    RateSourceConfig,
    ReconciliationSettings,

    # Enums
    CurrencyCode,
    Severity,
    PairingStrategyType,

    # Exceptions
    ReconciliationError,
    ConfigurationError,
    ValidationError,
    MatchingError,
    RateFetchError,
    BusinessError,
    BusinessRuleViolationError,
    ToleranceExceededError,
    InsufficientDataError
)
from .matching import ReconciliationEngine, LineItemScorer, TextSimilarity, similarity
from .currency import CurrencyConverter, RateCache
from .rules import RuleField, ToleranceRule, ToleranceRuleEngine

__version__ = "1.0.0"
__author__ = "Invoice Processing System"

__all__ = [
    # Core data models
    "Money",
    "LineItem",
    "InvoiceLineItem",
    "PurchaseOrderLineItem",
    "Supplier",
    "Invoice",
    "PurchaseOrder",
    "ExchangeRate",

    # Result models
    "MatchScore",
    "MatchCandidate",
    "MatchResult",
    "RuleResult",
    "EvaluationResult",
    "ReconciliationContext",

    # Configuration models
    "RateSourceConfig",
    "ReconciliationSettings",

    # Enums
    "CurrencyCode",
    "Severity",
    "PairingStrategyType",

    # Exceptions
    "ReconciliationError",
    "ConfigurationError",
    "ValidationError",
    "MatchingError",
    "RateFetchError",
    "BusinessError",
    "BusinessRuleViolationError",
    "ToleranceExceededError",
    "InsufficientDataError",

    # Engines
    "ReconciliationEngine",
    "LineItemScorer",
    "TextSimilarity",
    "similarity",
    "CurrencyConverter",
    "RateCache",
    "RuleField",
    "ToleranceRule",
    "ToleranceRuleEngine"
]
