"""
Tolerance rule engine.

Evaluates a reconciliation context (an invoice plus the purchase order it
was matched to) against numeric tolerance rules and produces a composite
pass / warning / error outcome. Used as a secondary gate after the
reconciliation engine has chosen a purchase order.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from invoice_reconciliation.models import (
    BusinessRuleViolationError, ConfigurationError, EvaluationResult, Invoice, Money,
    PurchaseOrder, ReconciliationContext, ReconciliationSettings, RuleResult, Severity,
    ToleranceExceededError
)

import logging
logger = logging.getLogger(__name__)

DEFAULT_WARNING_BAND_PCT = 5.0


def _total_amount(context: ReconciliationContext, document: Union[Invoice, PurchaseOrder]) -> Optional[Decimal]:
    target = context.purchase_order.total.currency
    if document.total.currency == target:
        return document.total.amount
    converted = context.extensions.get('converted_invoice_total')
    if document is context.invoice and isinstance(converted, Money) and converted.currency == target:
        return converted.amount
    return None


def _line_items_total(context: ReconciliationContext, document: Union[Invoice, PurchaseOrder]) -> Optional[Decimal]:
    target = context.purchase_order.total.currency
    if any(item.total.currency != target for item in document.line_items):
        return None
    return sum((item.total.amount for item in document.line_items), Decimal('0'))


def _total_quantity(context: ReconciliationContext, document: Union[Invoice, PurchaseOrder]) -> Optional[Decimal]:
    return Decimal(sum(item.quantity for item in document.line_items))


def _line_item_count(context: ReconciliationContext, document: Union[Invoice, PurchaseOrder]) -> Optional[Decimal]:
    return Decimal(len(document.line_items))


class RuleField(Enum):
    """
    Numeric fields a tolerance rule can compare.

    Each member reads its value from one side of the context; None means the
    value is not comparable (for example, totals in different currencies).
    """
    TOTAL_AMOUNT = "totalAmount"
    LINE_ITEMS_TOTAL = "lineItemsTotal"
    TOTAL_QUANTITY = "totalQuantity"
    LINE_ITEM_COUNT = "lineItemCount"

    @classmethod
    def from_name(cls, name: Union['RuleField', str]) -> 'RuleField':
        """
        Resolve a field from its enum member, value or snake_case name.

        Raises:
            ConfigurationError: If the name is not a known field
        """
        if isinstance(name, cls):
            return name
        normalized = str(name).replace('_', '').lower()
        for member in cls:
            if normalized in (member.value.lower(), member.name.replace('_', '').lower()):
                return member
        raise ConfigurationError(f"Unknown rule field: {name!r}",
                                 {'supported': [member.value for member in cls]})

    def read(self, context: ReconciliationContext,
             document: Union[Invoice, PurchaseOrder]) -> Optional[Decimal]:
        return _FIELD_ACCESSORS[self](context, document)


_FIELD_ACCESSORS: Dict[RuleField, Callable[[ReconciliationContext, Union[Invoice, PurchaseOrder]], Optional[Decimal]]] = {
    RuleField.TOTAL_AMOUNT: _total_amount,
    RuleField.LINE_ITEMS_TOTAL: _line_items_total,
    RuleField.TOTAL_QUANTITY: _total_quantity,
    RuleField.LINE_ITEM_COUNT: _line_item_count,
}


class Rule(ABC):
    """A business rule evaluated against a reconciliation context."""

    @abstractmethod
    def evaluate(self, context: ReconciliationContext) -> RuleResult:
        """Evaluate the rule and describe the outcome."""
        pass

    @abstractmethod
    def explain(self) -> str:
        """Human-readable statement of what the rule requires."""
        pass


class ToleranceRule(Rule):
    """
    Compares a numeric field on the invoice against the purchase order.

    The relative difference ``|actual - expected| / expected`` (invoice is
    actual, purchase order is expected) must not exceed the tolerance.
    A failure is a warning while the overage stays within
    ``warning_band_pct`` percentage points of the tolerance, an error beyond.
    Fields that are not comparable on either side are skipped with an
    informational pass.
    """

    def __init__(self, tolerance_in_percent: float, field: Union[RuleField, str],
                 warning_band_pct: float = DEFAULT_WARNING_BAND_PCT):
        """
        Initialize tolerance rule.

        Args:
            tolerance_in_percent: Allowed deviation, e.g. 2 for ±2%
            field: Field to compare, as RuleField or name such as "totalAmount"
            warning_band_pct: Percentage points beyond tolerance still treated as a warning

        Raises:
            ConfigurationError: If the field is unknown or the tolerance negative
        """
        if tolerance_in_percent < 0:
            raise ConfigurationError(f"Tolerance must be non-negative, got {tolerance_in_percent}")
        self.tolerance = tolerance_in_percent
        self.field = RuleField.from_name(field)
        self.warning_band_pct = warning_band_pct

    @classmethod
    def from_settings(cls, tolerance_in_percent: float, field: Union[RuleField, str],
                      settings: ReconciliationSettings) -> 'ToleranceRule':
        """Build a rule whose warning band comes from ``settings.warning_band_pct``."""
        return cls(tolerance_in_percent, field, warning_band_pct=settings.warning_band_pct)

    def evaluate(self, context: ReconciliationContext) -> RuleResult:
        name = self.field.value
        expected = self.field.read(context, context.purchase_order)
        actual = self.field.read(context, context.invoice)

        if expected is None or actual is None:
            return RuleResult(
                passed=True,
                message=f"{name} comparison skipped (non-numeric values)",
                severity=Severity.INFO
            )

        difference_pct = self._difference_pct(expected, actual)
        tolerance = Decimal(str(self.tolerance))

        if difference_pct <= tolerance:
            return RuleResult(
                passed=True,
                message=f"{name} within {self.tolerance}% tolerance",
                severity=Severity.INFO
            )

        overage = difference_pct - tolerance
        severity = Severity.WARNING if overage <= Decimal(str(self.warning_band_pct)) else Severity.ERROR
        return RuleResult(
            passed=False,
            message=f"{name} exceeds {self.tolerance}% tolerance ({difference_pct:.2f}%)",
            severity=severity,
            details={
                'field': name,
                'expected': expected,
                'actual': actual,
                'tolerance': self.tolerance,
                'difference_pct': float(difference_pct)
            }
        )

    def explain(self) -> str:
        return f"{self.field.value} must be within {self.tolerance}% of expected value"

    def _difference_pct(self, expected: Decimal, actual: Decimal) -> Decimal:
        if expected == 0:
            return Decimal('0') if actual == 0 else Decimal('Infinity')
        return abs(actual - expected) / abs(expected) * 100


class OutcomeKind(Enum):
    """Whether evaluation continues after a rule or stops on it."""
    CONTINUE = "continue"
    VIOLATION = "violation"


@dataclass(frozen=True)
class RuleOutcome:
    """A rule result tagged with what it means for the evaluation loop."""
    kind: OutcomeKind
    rule: Rule
    result: RuleResult

    @classmethod
    def of(cls, rule: Rule, result: RuleResult) -> 'RuleOutcome':
        if not result.passed and result.severity == Severity.ERROR:
            return cls(OutcomeKind.VIOLATION, rule, result)
        return cls(OutcomeKind.CONTINUE, rule, result)

    @property
    def is_violation(self) -> bool:
        return self.kind == OutcomeKind.VIOLATION


class ToleranceRuleEngine:
    """
    Evaluates registered rules in registration order.

    Evaluation stops at the first error-severity failure, which is raised as
    BusinessRuleViolationError (ToleranceExceededError for tolerance rules);
    later rules are not evaluated. Otherwise all results are returned with
    the failed warnings collected separately.
    """

    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        self.logger = logging.getLogger(f"{__name__}.ToleranceRuleEngine")
        self._rules: List[Rule] = list(rules or [])

    @classmethod
    def from_settings(cls, tolerances: Mapping[Union[RuleField, str], float],
                      settings: Optional[ReconciliationSettings] = None) -> 'ToleranceRuleEngine':
        """
        Build an engine with one tolerance rule per field.

        Args:
            tolerances: Field name to allowed deviation in percent, in evaluation order
            settings: Supplies the warning band (defaults if None)

        Returns:
            ToleranceRuleEngine with the rules registered

        Raises:
            ConfigurationError: If a field is unknown or a tolerance negative
        """
        settings = settings or ReconciliationSettings()
        return cls([ToleranceRule.from_settings(tolerance, field, settings)
                    for field, tolerance in tolerances.items()])

    def add_rule(self, rule: Rule) -> 'ToleranceRuleEngine':
        """Register a rule; returns the engine for chaining."""
        self._rules.append(rule)
        return self

    @property
    def rules(self) -> tuple:
        return tuple(self._rules)

    def explain(self) -> List[str]:
        """Explanations of every registered rule, in evaluation order."""
        return [rule.explain() for rule in self._rules]

    def iter_outcomes(self, context: ReconciliationContext) -> Iterator[RuleOutcome]:
        """
        Yield one tagged outcome per rule, stopping after the first violation.

        Args:
            context: Reconciliation context to evaluate

        Yields:
            RuleOutcome for each evaluated rule
        """
        for rule in self._rules:
            outcome = RuleOutcome.of(rule, rule.evaluate(context))
            yield outcome
            if outcome.is_violation:
                return

    def evaluate(self, context: ReconciliationContext) -> EvaluationResult:
        """
        Evaluate every rule against the context.

        Args:
            context: Invoice and matched purchase order

        Returns:
            EvaluationResult with all results and the warning subset

        Raises:
            BusinessRuleViolationError: On the first error-severity failure
        """
        results: List[RuleResult] = []

        for outcome in self.iter_outcomes(context):
            results.append(outcome.result)
            if outcome.is_violation:
                raise self._violation(outcome)
            if not outcome.result.passed:
                self.logger.warning(f"Rule warning for invoice {context.invoice.invoice_number}: "
                                    f"{outcome.result.message}")

        warnings = tuple(r for r in results if not r.passed and r.severity == Severity.WARNING)
        passed = all(r.passed for r in results)

        self.logger.info(f"Evaluated {len(results)} rules for invoice {context.invoice.invoice_number}: "
                         f"passed={passed}, warnings={len(warnings)}")
        return EvaluationResult(passed=passed, results=tuple(results), warnings=warnings)

    def _violation(self, outcome: RuleOutcome) -> BusinessRuleViolationError:
        explanation = outcome.rule.explain()
        self.logger.error(f"Rule violation: {explanation} - {outcome.result.message}")

        error_class = ToleranceExceededError if isinstance(outcome.rule, ToleranceRule) else BusinessRuleViolationError
        return error_class(f"Rule violation: {explanation}", explanation, outcome.result)
