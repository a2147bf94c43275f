"""
Unit tests for tolerance rules and the rule engine.

Tests pass/warning/error banding, skipped comparisons, fail-fast
evaluation, field name resolution and the match-to-rules flow.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from invoice_reconciliation.connectors.static_source import StaticRateSource
from invoice_reconciliation.currency.converter import CurrencyConverter
from invoice_reconciliation.matching.reconciliation_engine import ReconciliationEngine
from invoice_reconciliation.models import (
    BusinessRuleViolationError, ConfigurationError, Money, ReconciliationContext, ReconciliationSettings,
    RuleResult, Severity, ToleranceExceededError
)
from invoice_reconciliation.rules.rule_engine import (
    OutcomeKind, Rule, RuleField, ToleranceRule, ToleranceRuleEngine
)

from conftest import make_invoice, make_line_item, make_purchase_order


def totals_context(invoice_total: str, po_total: str = "100") -> ReconciliationContext:
    """Context whose invoice and PO differ only in their totals."""
    return ReconciliationContext(
        invoice=make_invoice(total=invoice_total),
        purchase_order=make_purchase_order(total=po_total)
    )


def spy_rule(result: RuleResult, explanation: str = "spy rule") -> Mock:
    rule = Mock(spec=Rule)
    rule.evaluate.return_value = result
    rule.explain.return_value = explanation
    return rule


class TestRuleField:
    """Test cases for RuleField."""

    def test_from_name_variants(self):
        """Test camelCase, snake_case and member name lookups."""
        assert RuleField.from_name("totalAmount") is RuleField.TOTAL_AMOUNT
        assert RuleField.from_name("total_amount") is RuleField.TOTAL_AMOUNT
        assert RuleField.from_name("TOTAL_AMOUNT") is RuleField.TOTAL_AMOUNT
        assert RuleField.from_name(RuleField.LINE_ITEM_COUNT) is RuleField.LINE_ITEM_COUNT

    def test_unknown_field(self):
        """Test that an unknown field name is a configuration error."""
        with pytest.raises(ConfigurationError):
            RuleField.from_name("discount")

    def test_quantity_and_count(self):
        """Test the line item based fields."""
        invoice = make_invoice(line_items=[make_line_item(quantity=3), make_line_item("Bolt M8", quantity=4)])
        context = ReconciliationContext(invoice, make_purchase_order())

        assert RuleField.TOTAL_QUANTITY.read(context, invoice) == Decimal('7')
        assert RuleField.LINE_ITEM_COUNT.read(context, invoice) == Decimal('2')
        assert RuleField.LINE_ITEMS_TOTAL.read(context, invoice) == Decimal('350.00')


class TestToleranceRule:
    """Test cases for ToleranceRule class."""

    def setup_method(self):
        """Setup test environment."""
        self.rule = ToleranceRule(2, "totalAmount")

    def test_within_tolerance(self):
        """Test that 101 against 100 passes a 2% rule."""
        result = self.rule.evaluate(totals_context("101"))

        assert result.passed is True
        assert result.severity == Severity.INFO

    def test_warning_band(self):
        """Test that 103 against 100 is a warning."""
        result = self.rule.evaluate(totals_context("103"))

        assert result.passed is False
        assert result.severity == Severity.WARNING
        assert result.details['difference_pct'] == pytest.approx(3.0)

    def test_error_beyond_band(self):
        """Test that 110 against 100 is an error."""
        result = self.rule.evaluate(totals_context("110"))

        assert result.passed is False
        assert result.severity == Severity.ERROR
        assert result.details == {
            'field': 'totalAmount',
            'expected': Decimal('100'),
            'actual': Decimal('110'),
            'tolerance': 2,
            'difference_pct': 10.0
        }

    def test_band_edges(self):
        """Test the exact edges of the tolerance and warning band."""
        assert self.rule.evaluate(totals_context("102")).passed is True
        assert self.rule.evaluate(totals_context("107")).severity == Severity.WARNING
        assert self.rule.evaluate(totals_context("107.01")).severity == Severity.ERROR

    def test_under_expected_value(self):
        """Test that the difference is absolute."""
        assert self.rule.evaluate(totals_context("97")).severity == Severity.WARNING

    def test_custom_warning_band(self):
        """Test a narrower warning band."""
        rule = ToleranceRule(2, "totalAmount", warning_band_pct=0.5)

        assert rule.evaluate(totals_context("103")).severity == Severity.ERROR

    def test_warning_band_from_settings(self):
        """Test that the warning band follows the reconciliation settings."""
        rule = ToleranceRule.from_settings(2, "totalAmount", ReconciliationSettings(warning_band_pct=0.5))

        assert rule.warning_band_pct == 0.5
        assert rule.evaluate(totals_context("102.5")).severity == Severity.WARNING
        assert rule.evaluate(totals_context("103")).severity == Severity.ERROR

    def test_zero_expected(self):
        """Test comparisons against a zero expected value."""
        assert self.rule.evaluate(totals_context("0", po_total="0")).passed is True
        assert self.rule.evaluate(totals_context("5", po_total="0")).severity == Severity.ERROR

    def test_cross_currency_skipped(self):
        """Test that totals in different currencies are skipped."""
        invoice = make_invoice(line_items=[make_line_item(unit_price="40.00", currency="GBP")], currency="GBP")
        context = ReconciliationContext(invoice, make_purchase_order())

        result = self.rule.evaluate(context)

        assert result.passed is True
        assert result.severity == Severity.INFO
        assert "skipped" in result.message

    def test_cross_currency_with_converted_total(self):
        """Test that a converted invoice total is compared when present."""
        invoice = make_invoice(line_items=[make_line_item(unit_price="40.00", currency="GBP")], currency="GBP")
        context = ReconciliationContext(invoice, make_purchase_order(total="480"),
                                        {'converted_invoice_total': Money(Decimal('500'), "USD")})

        result = self.rule.evaluate(context)

        assert result.severity == Severity.WARNING

    def test_explain(self):
        """Test the rule explanation."""
        assert self.rule.explain() == "totalAmount must be within 2% of expected value"

    def test_negative_tolerance(self):
        """Test that a negative tolerance is rejected."""
        with pytest.raises(ConfigurationError):
            ToleranceRule(-1, "totalAmount")

    def test_unknown_field(self):
        """Test that an unknown field fails at construction."""
        with pytest.raises(ConfigurationError):
            ToleranceRule(2, "vendorName")


class TestToleranceRuleEngine:
    """Test cases for ToleranceRuleEngine class."""

    def setup_method(self):
        """Setup test environment."""
        self.engine = ToleranceRuleEngine().add_rule(ToleranceRule(2, "totalAmount"))

    def test_all_pass(self):
        """Test a clean evaluation."""
        evaluation = self.engine.evaluate(totals_context("101"))

        assert evaluation.passed is True
        assert len(evaluation.results) == 1
        assert evaluation.warnings == ()

    def test_warning_collected(self):
        """Test that warnings are returned, not raised."""
        evaluation = self.engine.evaluate(totals_context("103"))

        assert evaluation.passed is False
        assert len(evaluation.warnings) == 1
        assert evaluation.warnings[0].severity == Severity.WARNING

    def test_error_raises(self):
        """Test that an error-severity failure raises."""
        with pytest.raises(BusinessRuleViolationError) as exc_info:
            self.engine.evaluate(totals_context("110"))

        error = exc_info.value
        assert isinstance(error, ToleranceExceededError)
        assert error.rule_explanation == "totalAmount must be within 2% of expected value"
        assert error.result.severity == Severity.ERROR
        assert error.field == "totalAmount"
        assert error.expected == Decimal('100')
        assert error.actual == Decimal('110')

    def test_fail_fast(self):
        """Test that rules after the first error are not evaluated."""
        failing = spy_rule(RuleResult(False, "bad", Severity.ERROR), "always fails")
        never = spy_rule(RuleResult(True, "ok", Severity.INFO))
        engine = ToleranceRuleEngine([failing, never])

        with pytest.raises(BusinessRuleViolationError) as exc_info:
            engine.evaluate(totals_context("100"))

        assert not isinstance(exc_info.value, ToleranceExceededError)
        assert exc_info.value.rule_explanation == "always fails"
        failing.evaluate.assert_called_once()
        never.evaluate.assert_not_called()

    def test_registration_order(self):
        """Test that every rule runs in registration order after warnings."""
        warning = spy_rule(RuleResult(False, "close", Severity.WARNING))
        info = spy_rule(RuleResult(True, "ok", Severity.INFO))
        engine = ToleranceRuleEngine().add_rule(warning).add_rule(info)

        evaluation = engine.evaluate(totals_context("100"))

        assert [r.message for r in evaluation.results] == ["close", "ok"]
        assert evaluation.warnings == (warning.evaluate.return_value,)

    def test_iter_outcomes_stops_at_violation(self):
        """Test the tagged outcomes of the evaluation loop."""
        engine = ToleranceRuleEngine([
            ToleranceRule(2, "lineItemCount"),
            ToleranceRule(2, "totalAmount"),
            ToleranceRule(2, "totalQuantity"),
        ])

        outcomes = list(engine.iter_outcomes(totals_context("110")))

        assert [o.kind for o in outcomes] == [OutcomeKind.CONTINUE, OutcomeKind.VIOLATION]

    def test_from_settings(self):
        """Test building an engine from field tolerances and settings."""
        engine = ToleranceRuleEngine.from_settings(
            {"totalAmount": 2, "lineItemCount": 0},
            ReconciliationSettings(warning_band_pct=10.0)
        )

        assert [rule.field for rule in engine.rules] == [RuleField.TOTAL_AMOUNT, RuleField.LINE_ITEM_COUNT]
        assert all(rule.warning_band_pct == 10.0 for rule in engine.rules)
        assert engine.evaluate(totals_context("110")).warnings[0].severity == Severity.WARNING

    def test_from_settings_defaults(self):
        """Test that the default warning band applies without settings."""
        engine = ToleranceRuleEngine.from_settings({"totalAmount": 2})

        with pytest.raises(ToleranceExceededError):
            engine.evaluate(totals_context("110"))

    def test_rules_and_explain(self):
        """Test rule listing and explanations."""
        self.engine.add_rule(ToleranceRule(0, "lineItemCount"))

        assert len(self.engine.rules) == 2
        assert self.engine.explain() == [
            "totalAmount must be within 2% of expected value",
            "lineItemCount must be within 0% of expected value"
        ]


class TestMatchThenRules:
    """Test the reconciliation flow from matching to rule evaluation."""

    def test_cross_currency_flow(self):
        """Test that a converted match passes the total amount rule."""
        converter = CurrencyConverter(StaticRateSource({("GBP", "USD"): 1.25}))
        invoice = make_invoice(line_items=[make_line_item(unit_price="40.00", currency="GBP")], currency="GBP")
        po = make_purchase_order()

        match = ReconciliationEngine(converter=converter).match_invoice(invoice, [po])
        context = ReconciliationContext.from_match(invoice, match, converter)
        evaluation = ToleranceRuleEngine([ToleranceRule(2, "totalAmount")]).evaluate(context)

        assert evaluation.passed is True
        assert context.extensions['match_confidence'] == match.confidence
