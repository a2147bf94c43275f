"""
Core data models for the invoice reconciliation engine.

This module defines the value types exchanged between the matching engine,
the currency converter and the rule engine: money, documents and their line
items, match and evaluation results, configuration settings, and the
exception hierarchy used throughout the package.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union
import math
import os


AMOUNT_PRECISION = Decimal('0.0001')
MAX_DESCRIPTION_LENGTH = 500


# Custom exceptions for invoice reconciliation
class ReconciliationError(Exception):
    """Base exception for invoice reconciliation operations."""

    code = "RECONCILIATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': type(self).__name__,
            'code': self.code,
            'message': self.message,
            'details': _serialize(self.details)
        }


class ConfigurationError(ReconciliationError):
    """Raised when configuration is invalid or missing."""
    code = "CONFIGURATION_ERROR"


class ValidationError(ReconciliationError):
    """Raised when data validation fails."""
    code = "VALIDATION_ERROR"


class MatchingError(ReconciliationError):
    """Raised when a matching operation cannot be performed."""
    code = "MATCHING_ERROR"


class RateFetchError(ReconciliationError):
    """Raised when an exchange rate cannot be obtained from the rate source."""
    code = "RATE_FETCH_ERROR"


class BusinessError(ReconciliationError):
    """Base exception for business-level outcomes that need manual handling."""
    code = "BUSINESS_ERROR"


class BusinessRuleViolationError(BusinessError):
    """
    Raised by the rule engine on the first error-severity rule failure.

    Callers are expected to catch it and route the reconciliation to manual
    review rather than treat it as a crash.
    """
    code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, message: str, rule_explanation: str, result: 'RuleResult'):
        super().__init__(message, {'rule': rule_explanation, 'result': result.to_dict()})
        self.rule_explanation = rule_explanation
        self.result = result


class ToleranceExceededError(BusinessRuleViolationError):
    """Rule violation raised for a numeric field outside its tolerance."""
    code = "TOLERANCE_EXCEEDED"

    def __init__(self, message: str, rule_explanation: str, result: 'RuleResult'):
        super().__init__(message, rule_explanation, result)
        details = result.details or {}
        self.field = details.get('field')
        self.expected = details.get('expected')
        self.actual = details.get('actual')
        self.tolerance = details.get('tolerance')


class InsufficientDataError(BusinessError):
    """Raised when there is not enough data to build a reconciliation context."""
    code = "INSUFFICIENT_DATA"


def _serialize(value: Any) -> Any:
    """Make nested values JSON friendly."""
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert a numeric value to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


class CurrencyCode(Enum):
    """Currencies supported by the reconciliation engine."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    AUD = "AUD"
    CAD = "CAD"

    @classmethod
    def coerce(cls, value: Union['CurrencyCode', str]) -> 'CurrencyCode':
        """Return the member for a code such as ``"usd"``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(f"Unsupported currency code: {value!r}")


class Severity(Enum):
    """Severity of a rule evaluation result."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class PairingStrategyType(Enum):
    """Line item pairing policies available to the reconciliation engine."""
    GREEDY = "greedy"
    OPTIMAL = "optimal"


@dataclass(frozen=True)
class Money:
    """An amount in one of the supported currencies. Never negative."""
    amount: Decimal
    currency: CurrencyCode

    def __post_init__(self):
        amount = to_decimal(self.amount)
        if amount < 0:
            raise ValidationError(f"Money amount must be non-negative, got {amount}")
        object.__setattr__(self, 'amount', amount)
        object.__setattr__(self, 'currency', CurrencyCode.coerce(self.currency))

    def rounded(self) -> 'Money':
        """Return a copy quantized to four fractional digits."""
        return Money(self.amount.quantize(AMOUNT_PRECISION, rounding=ROUND_HALF_UP), self.currency)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'amount': str(self.amount),
            'currency': self.currency.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Money':
        """Create Money from dictionary."""
        return cls(amount=to_decimal(data['amount']), currency=CurrencyCode.coerce(data['currency']))


@dataclass(frozen=True)
class LineItem:
    """
    A single line on an invoice or a purchase order.

    Both document types share this shape; it is created once per source
    document and never mutated.
    """
    id: str
    description: str
    quantity: int
    unit_price: Money
    total: Money

    def __post_init__(self):
        if not self.description or not self.description.strip():
            raise ValidationError(f"Line item {self.id}: description is required")
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Line item {self.id}: description exceeds {MAX_DESCRIPTION_LENGTH} characters"
            )
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError(f"Line item {self.id}: quantity must be a positive integer")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price.to_dict(),
            'total': self.total.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineItem':
        """Create LineItem from dictionary."""
        return cls(
            id=data['id'],
            description=data['description'],
            quantity=data['quantity'],
            unit_price=Money.from_dict(data['unit_price']),
            total=Money.from_dict(data['total'])
        )


InvoiceLineItem = LineItem
PurchaseOrderLineItem = LineItem


@dataclass(frozen=True)
class Supplier:
    """Supplier that issued an invoice."""
    id: str
    name: str
    tax_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {'id': self.id, 'name': self.name, 'tax_id': self.tax_id}


def _line_items(owner: str, items) -> Tuple[LineItem, ...]:
    items = tuple(items or ())
    if not items:
        raise ValidationError(f"{owner}: at least one line item is required")
    return items


@dataclass(frozen=True)
class Invoice:
    """A received invoice. Owned by the caller and never mutated by the engine."""
    id: str
    invoice_number: str
    date: date
    due_date: date
    supplier: Supplier
    line_items: Tuple[LineItem, ...]
    total: Money
    currency: CurrencyCode
    status: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'line_items', _line_items(f"Invoice {self.invoice_number}", self.line_items))
        object.__setattr__(self, 'currency', CurrencyCode.coerce(self.currency))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'date': self.date.isoformat(),
            'due_date': self.due_date.isoformat(),
            'supplier': self.supplier.to_dict(),
            'line_items': [item.to_dict() for item in self.line_items],
            'total': self.total.to_dict(),
            'currency': self.currency.value,
            'status': self.status
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Invoice':
        """Create Invoice from dictionary."""
        supplier = data['supplier']
        return cls(
            id=data['id'],
            invoice_number=data['invoice_number'],
            date=_parse_date(data['date']),
            due_date=_parse_date(data['due_date']),
            supplier=Supplier(id=supplier['id'], name=supplier['name'], tax_id=supplier.get('tax_id')),
            line_items=tuple(LineItem.from_dict(item) for item in data['line_items']),
            total=Money.from_dict(data['total']),
            currency=CurrencyCode.coerce(data['currency']),
            status=data.get('status')
        )


@dataclass(frozen=True)
class PurchaseOrder:
    """A candidate purchase order. Read-only to the engine."""
    id: str
    po_number: str
    date: date
    supplier_id: str
    line_items: Tuple[LineItem, ...]
    total: Money
    currency: CurrencyCode
    status: str = "approved"

    def __post_init__(self):
        object.__setattr__(self, 'line_items', _line_items(f"Purchase order {self.po_number}", self.line_items))
        object.__setattr__(self, 'currency', CurrencyCode.coerce(self.currency))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'po_number': self.po_number,
            'date': self.date.isoformat(),
            'supplier_id': self.supplier_id,
            'line_items': [item.to_dict() for item in self.line_items],
            'total': self.total.to_dict(),
            'currency': self.currency.value,
            'status': self.status
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PurchaseOrder':
        """Create PurchaseOrder from dictionary."""
        return cls(
            id=data['id'],
            po_number=data['po_number'],
            date=_parse_date(data['date']),
            supplier_id=data['supplier_id'],
            line_items=tuple(LineItem.from_dict(item) for item in data['line_items']),
            total=Money.from_dict(data['total']),
            currency=CurrencyCode.coerce(data['currency']),
            status=data.get('status', 'approved')
        )


def _parse_date(value: Union[str, date]) -> date:
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value).date()


@dataclass(frozen=True)
class ExchangeRate:
    """Rate for converting one unit of ``from_currency`` into ``to_currency``."""
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    rate: float
    timestamp: datetime

    def __post_init__(self):
        if (not isinstance(self.rate, (int, float)) or isinstance(self.rate, bool)
                or not math.isfinite(self.rate) or self.rate <= 0):
            raise ValidationError(f"Exchange rate must be a positive finite number, got {self.rate!r}")
        object.__setattr__(self, 'from_currency', CurrencyCode.coerce(self.from_currency))
        object.__setattr__(self, 'to_currency', CurrencyCode.coerce(self.to_currency))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'from': self.from_currency.value,
            'to': self.to_currency.value,
            'rate': self.rate,
            'timestamp': self.timestamp.isoformat()
        }


@dataclass(frozen=True)
class MatchScore:
    """Aggregate score of one invoice against one purchase order."""
    confidence: float
    matched_items: int
    total_items: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'confidence': self.confidence,
            'matched_items': self.matched_items,
            'total_items': self.total_items
        }


@dataclass(frozen=True)
class MatchCandidate:
    """A purchase order admitted to the ranking, with its score."""
    purchase_order: PurchaseOrder
    score: MatchScore

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'purchase_order_id': self.purchase_order.id,
            'po_number': self.purchase_order.po_number,
            'score': self.score.to_dict()
        }


@dataclass(frozen=True)
class MatchResult:
    """
    Complete result of reconciling one invoice against its candidates.

    A result without ``best_match`` is a valid outcome, not an error.
    """
    best_match: Optional[PurchaseOrder]
    confidence: float
    alternatives: Tuple[MatchCandidate, ...] = ()
    reasons: Tuple[str, ...] = ()

    @property
    def is_match(self) -> bool:
        return self.best_match is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'best_match': self.best_match.to_dict() if self.best_match else None,
            'confidence': self.confidence,
            'alternatives': [c.to_dict() for c in self.alternatives],
            'reasons': list(self.reasons)
        }


@dataclass(frozen=True)
class RuleResult:
    """Outcome of evaluating one rule against a reconciliation context."""
    passed: bool
    message: str
    severity: Severity
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'passed': self.passed,
            'message': self.message,
            'severity': self.severity.value,
            'details': _serialize(self.details) if self.details is not None else None
        }


@dataclass(frozen=True)
class EvaluationResult:
    """Composite outcome of running every registered rule."""
    passed: bool
    results: Tuple[RuleResult, ...]
    warnings: Tuple[RuleResult, ...]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'passed': self.passed,
            'results': [r.to_dict() for r in self.results],
            'warnings': [w.to_dict() for w in self.warnings]
        }


@dataclass
class ReconciliationContext:
    """
    Input to rule evaluation: an invoice, the purchase order chosen for it,
    and an open map of extra values computed by the caller.
    """
    invoice: Invoice
    purchase_order: PurchaseOrder
    extensions: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_match(cls, invoice: Invoice, match_result: MatchResult,
                   converter: Optional[Any] = None) -> 'ReconciliationContext':
        """
        Build a context from a match result.

        Args:
            invoice: The reconciled invoice
            match_result: Result returned by the reconciliation engine
            converter: Optional currency converter used to express the invoice
                total in the purchase order currency

        Returns:
            ReconciliationContext for the best match

        Raises:
            InsufficientDataError: If the result has no best match
        """
        if match_result.best_match is None:
            raise InsufficientDataError(
                f"Invoice {invoice.invoice_number} has no matched purchase order",
                {'invoice_number': invoice.invoice_number}
            )

        po = match_result.best_match
        extensions: Dict[str, Any] = {'match_confidence': match_result.confidence}

        if converter is not None and invoice.total.currency != po.total.currency:
            extensions['converted_invoice_total'] = converter.convert(
                invoice.total.amount, invoice.total.currency, po.total.currency
            )

        return cls(invoice=invoice, purchase_order=po, extensions=extensions)


@dataclass
class RateSourceConfig:
    """Configuration for the external exchange rate API."""
    api_url: str = "https://api.exchangerate-api.com/v4/latest/"
    timeout: float = 10.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {'api_url': self.api_url, 'timeout': self.timeout}

    @classmethod
    def from_env(cls) -> 'RateSourceConfig':
        """Read EXCHANGE_RATE_API_URL and EXCHANGE_RATE_TIMEOUT."""
        defaults = cls()
        return cls(
            api_url=os.getenv('EXCHANGE_RATE_API_URL', defaults.api_url),
            timeout=_env_number('EXCHANGE_RATE_TIMEOUT', defaults.timeout)
        )


@dataclass
class ReconciliationSettings:
    """Thresholds and policies used by the scorer, the engine and the rate cache."""
    description_threshold: float = 0.85  # 0.0 to 1.0
    price_tolerance_pct: float = 2.0  # 0 to 100
    quantity_tolerance_pct: float = 2.0  # 0 to 100
    confidence_threshold: float = 0.90  # 0.0 to 1.0
    rate_cache_ttl_seconds: float = 3600
    max_alternatives: int = 3
    clamp_item_scores: bool = False
    penalize_unmatched_items: bool = False
    pairing_strategy: str = PairingStrategyType.GREEDY.value
    warning_band_pct: float = 5.0
    use_invoice_date_rates: bool = False

    @property
    def price_tolerance(self) -> float:
        return self.price_tolerance_pct / 100

    @property
    def quantity_tolerance(self) -> float:
        return self.quantity_tolerance_pct / 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'description_threshold': self.description_threshold,
            'price_tolerance_pct': self.price_tolerance_pct,
            'quantity_tolerance_pct': self.quantity_tolerance_pct,
            'confidence_threshold': self.confidence_threshold,
            'rate_cache_ttl_seconds': self.rate_cache_ttl_seconds,
            'max_alternatives': self.max_alternatives,
            'clamp_item_scores': self.clamp_item_scores,
            'penalize_unmatched_items': self.penalize_unmatched_items,
            'pairing_strategy': self.pairing_strategy,
            'warning_band_pct': self.warning_band_pct,
            'use_invoice_date_rates': self.use_invoice_date_rates
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReconciliationSettings':
        """Create ReconciliationSettings from dictionary."""
        return cls(**data)

    @classmethod
    def from_env(cls) -> 'ReconciliationSettings':
        """Build settings from RECONCILIATION_* environment variables."""
        defaults = cls()
        return cls(
            description_threshold=_env_number('RECONCILIATION_DESCRIPTION_THRESHOLD',
                                              defaults.description_threshold),
            price_tolerance_pct=_env_number('RECONCILIATION_PRICE_TOLERANCE_PCT',
                                            defaults.price_tolerance_pct),
            quantity_tolerance_pct=_env_number('RECONCILIATION_QUANTITY_TOLERANCE_PCT',
                                               defaults.quantity_tolerance_pct),
            confidence_threshold=_env_number('RECONCILIATION_CONFIDENCE_THRESHOLD',
                                             defaults.confidence_threshold),
            rate_cache_ttl_seconds=_env_number('EXCHANGE_RATE_CACHE_TTL',
                                               defaults.rate_cache_ttl_seconds),
            pairing_strategy=os.getenv('RECONCILIATION_PAIRING_STRATEGY', defaults.pairing_strategy)
        )


def _env_number(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be numeric, got {value!r}")
