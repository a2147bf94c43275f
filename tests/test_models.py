"""
Unit tests for reconciliation data models.

Tests value validation, serialization, settings loading and the exception
hierarchy.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from invoice_reconciliation.models import (
    BusinessError, BusinessRuleViolationError, ConfigurationError, CurrencyCode, ExchangeRate,
    InsufficientDataError, Invoice, LineItem, MatchResult, Money, PurchaseOrder,
    RateSourceConfig, ReconciliationContext, ReconciliationError, ReconciliationSettings,
    RuleResult, Severity, ToleranceExceededError, ValidationError
)
from invoice_reconciliation.connectors.static_source import StaticRateSource
from invoice_reconciliation.currency.converter import CurrencyConverter

from conftest import make_invoice, make_line_item, make_purchase_order


class TestMoney:
    """Test cases for Money."""

    def test_amount_is_decimal(self):
        """Test that float amounts become Decimals without float artefacts."""
        money = Money(0.1, "USD")

        assert money.amount == Decimal('0.1')
        assert money.currency == CurrencyCode.USD

    def test_negative_amount_rejected(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            Money(Decimal('-1.00'), CurrencyCode.USD)

    def test_unsupported_currency_rejected(self):
        """Test that unsupported currency codes are rejected."""
        with pytest.raises(ValidationError):
            Money(Decimal('1.00'), "JPY")

    def test_rounded_half_up(self):
        """Test rounding to four places, half away from zero."""
        assert Money(Decimal('1.00005'), "USD").rounded().amount == Decimal('1.0001')
        assert Money(Decimal('1.00004'), "USD").rounded().amount == Decimal('1.0000')

    def test_dict_round_trip(self):
        """Test conversion to and from a dictionary."""
        money = Money(Decimal('12.3400'), "eur")

        assert money.to_dict() == {'amount': '12.3400', 'currency': 'EUR'}
        assert Money.from_dict(money.to_dict()) == money


class TestLineItem:
    """Test cases for LineItem."""

    def test_valid_line_item(self):
        """Test creating a valid line item."""
        item = make_line_item()

        assert item.quantity == 10
        assert item.total.amount == Decimal('500.00')

    def test_zero_quantity_rejected(self):
        """Test that quantity must be positive."""
        with pytest.raises(ValidationError):
            make_line_item(quantity=0)

    def test_fractional_quantity_rejected(self):
        """Test that quantity must be an integer."""
        with pytest.raises(ValidationError):
            LineItem("1", "Widget A", 1.5, Money(1, "USD"), Money(1, "USD"))

    def test_blank_description_rejected(self):
        """Test that a description is required."""
        with pytest.raises(ValidationError):
            make_line_item(description="   ")

    def test_long_description_rejected(self):
        """Test the description length limit."""
        make_line_item(description="x" * 500)
        with pytest.raises(ValidationError):
            make_line_item(description="x" * 501)


class TestDocuments:
    """Test cases for Invoice and PurchaseOrder."""

    def test_invoice_requires_line_items(self):
        """Test that an invoice without line items is rejected."""
        invoice = make_invoice()

        with pytest.raises(ValidationError):
            Invoice(invoice.id, invoice.invoice_number, invoice.date, invoice.due_date,
                    invoice.supplier, (), invoice.total, invoice.currency)

    def test_line_items_stored_as_tuple(self):
        """Test that line items are frozen into a tuple."""
        po = make_purchase_order(line_items=[make_line_item()])

        assert isinstance(po.line_items, tuple)
        assert po.status == "approved"

    def test_invoice_dict_round_trip(self):
        """Test invoice serialization round trip."""
        invoice = make_invoice(line_items=[make_line_item(), make_line_item("Widget B", 2, "7.25")])

        restored = Invoice.from_dict(invoice.to_dict())

        assert restored.invoice_number == invoice.invoice_number
        assert restored.line_items == invoice.line_items
        assert restored.total == invoice.total
        assert restored.date == date(2024, 1, 15)
        assert restored.due_date == invoice.due_date
        assert restored.to_dict() == invoice.to_dict()

    def test_purchase_order_dict_round_trip(self):
        """Test purchase order serialization round trip."""
        po = make_purchase_order(currency="EUR")

        restored = PurchaseOrder.from_dict(po.to_dict())

        assert restored.currency == CurrencyCode.EUR
        assert restored.line_items == po.line_items
        assert restored.date == po.date
        assert restored.to_dict()['date'] == "2024-01-02"


class TestExchangeRate:
    """Test cases for ExchangeRate."""

    def test_rate_must_be_positive(self):
        """Test that zero and negative rates are rejected."""
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            ExchangeRate("USD", "EUR", 0, now)
        with pytest.raises(ValidationError):
            ExchangeRate("USD", "EUR", -0.5, now)

    def test_rate_must_be_finite(self):
        """Test that NaN and infinite rates are rejected."""
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            ExchangeRate("USD", "EUR", float('nan'), now)
        with pytest.raises(ValidationError):
            ExchangeRate("USD", "EUR", float('inf'), now)

    def test_to_dict(self):
        """Test exchange rate serialization."""
        rate = ExchangeRate("usd", "eur", 0.92, datetime(2024, 1, 15))

        assert rate.to_dict() == {'from': 'USD', 'to': 'EUR', 'rate': 0.92,
                                  'timestamp': '2024-01-15T00:00:00'}


class TestReconciliationContext:
    """Test cases for ReconciliationContext."""

    def test_from_match_without_best_match(self):
        """Test that a no-match result cannot become a context."""
        with pytest.raises(InsufficientDataError):
            ReconciliationContext.from_match(make_invoice(), MatchResult(best_match=None, confidence=0.0))

    def test_from_match_same_currency(self):
        """Test context built from a same-currency match."""
        po = make_purchase_order()
        context = ReconciliationContext.from_match(make_invoice(), MatchResult(best_match=po, confidence=0.97))

        assert context.purchase_order is po
        assert context.extensions == {'match_confidence': 0.97}

    def test_from_match_converts_invoice_total(self):
        """Test that a converter adds the invoice total in the PO currency."""
        invoice = make_invoice(line_items=[make_line_item(unit_price="40.00", currency="GBP")], currency="GBP")
        po = make_purchase_order()
        converter = CurrencyConverter(StaticRateSource({("GBP", "USD"): 1.25}))

        context = ReconciliationContext.from_match(invoice, MatchResult(best_match=po, confidence=1.0), converter)

        assert context.extensions['converted_invoice_total'] == Money(Decimal('500.0000'), "USD")


class TestSettings:
    """Test cases for ReconciliationSettings and RateSourceConfig."""

    def test_defaults(self):
        """Test default thresholds and tolerances."""
        settings = ReconciliationSettings()

        assert settings.description_threshold == 0.85
        assert settings.confidence_threshold == 0.90
        assert settings.price_tolerance == pytest.approx(0.02)
        assert settings.quantity_tolerance == pytest.approx(0.02)
        assert settings.rate_cache_ttl_seconds == 3600
        assert settings.pairing_strategy == "greedy"

    def test_dict_round_trip(self):
        """Test settings serialization round trip."""
        settings = ReconciliationSettings(confidence_threshold=0.8, pairing_strategy="optimal")

        assert ReconciliationSettings.from_dict(settings.to_dict()) == settings

    def test_from_env(self, monkeypatch):
        """Test loading settings from environment variables."""
        monkeypatch.setenv('RECONCILIATION_CONFIDENCE_THRESHOLD', '0.75')
        monkeypatch.setenv('RECONCILIATION_PRICE_TOLERANCE_PCT', '5')
        monkeypatch.setenv('EXCHANGE_RATE_CACHE_TTL', '120')
        monkeypatch.setenv('RECONCILIATION_PAIRING_STRATEGY', 'optimal')

        settings = ReconciliationSettings.from_env()

        assert settings.confidence_threshold == 0.75
        assert settings.price_tolerance_pct == 5.0
        assert settings.rate_cache_ttl_seconds == 120.0
        assert settings.pairing_strategy == "optimal"
        assert settings.description_threshold == 0.85

    def test_from_env_non_numeric(self, monkeypatch):
        """Test that a non-numeric environment value is a configuration error."""
        monkeypatch.setenv('RECONCILIATION_DESCRIPTION_THRESHOLD', 'high')

        with pytest.raises(ConfigurationError):
            ReconciliationSettings.from_env()

    def test_rate_source_from_env(self, monkeypatch):
        """Test loading the rate API configuration from the environment."""
        monkeypatch.delenv('EXCHANGE_RATE_API_URL', raising=False)
        monkeypatch.setenv('EXCHANGE_RATE_TIMEOUT', '2.5')

        config = RateSourceConfig.from_env()

        assert config.api_url == "https://api.exchangerate-api.com/v4/latest/"
        assert config.timeout == 2.5


class TestExceptions:
    """Test cases for the exception hierarchy."""

    def test_hierarchy(self):
        """Test that business errors share the reconciliation base."""
        assert issubclass(ToleranceExceededError, BusinessRuleViolationError)
        assert issubclass(BusinessRuleViolationError, BusinessError)
        assert issubclass(InsufficientDataError, BusinessError)
        assert issubclass(BusinessError, ReconciliationError)

    def test_tolerance_error_exposes_details(self):
        """Test that the tolerance error exposes the failing comparison."""
        result = RuleResult(False, "totalAmount exceeds 2% tolerance", Severity.ERROR,
                            {'field': 'totalAmount', 'expected': Decimal('100'), 'actual': Decimal('110'),
                             'tolerance': 2, 'difference_pct': 10.0})
        error = ToleranceExceededError("Rule violation", "totalAmount must be within 2%", result)

        assert error.field == 'totalAmount'
        assert error.actual == Decimal('110')
        assert error.result is result

        data = error.to_dict()
        assert data['code'] == "TOLERANCE_EXCEEDED"
        assert data['details']['result']['details']['expected'] == '100'
