"""
Pytest fixtures for the invoice reconciliation test suite.

Provides:
- Builders for line items, invoices and purchase orders
- A controllable clock for cache expiry tests
- Rate sources with fetch counting
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

import pytest

from invoice_reconciliation.connectors.static_source import StaticRateSource
from invoice_reconciliation.models import (
    CurrencyCode, Invoice, LineItem, Money, PurchaseOrder, Supplier
)

SUPPLIER = Supplier(id="SUP-001", name="Acme Supplies Ltd", tax_id="GB123456789")


def make_line_item(description: str = "Widget A", quantity: int = 10, unit_price: str = "50.00",
                   currency: str = "USD", item_id: Optional[str] = None) -> LineItem:
    """Build a line item whose total is quantity times unit price."""
    price = Decimal(unit_price)
    return LineItem(
        id=item_id or f"{description}-{quantity}-{unit_price}",
        description=description,
        quantity=quantity,
        unit_price=Money(price, currency),
        total=Money(price * quantity, currency)
    )


def make_invoice(line_items: Optional[Sequence[LineItem]] = None, currency: str = "USD",
                 total: Optional[str] = None, invoice_number: str = "INV-001",
                 invoice_date: date = date(2024, 1, 15)) -> Invoice:
    """Build an invoice; the total defaults to the sum of the line totals."""
    line_items = tuple(line_items or [make_line_item(currency=currency)])
    amount = Decimal(total) if total is not None else sum((item.total.amount for item in line_items), Decimal('0'))
    return Invoice(
        id=f"id-{invoice_number}",
        invoice_number=invoice_number,
        date=invoice_date,
        due_date=invoice_date + timedelta(days=30),
        supplier=SUPPLIER,
        line_items=line_items,
        total=Money(amount, currency),
        currency=currency
    )


def make_purchase_order(line_items: Optional[Sequence[LineItem]] = None, currency: str = "USD",
                        total: Optional[str] = None, po_number: str = "PO-001") -> PurchaseOrder:
    """Build an approved purchase order; the total defaults to the sum of the line totals."""
    line_items = tuple(line_items or [make_line_item(currency=currency)])
    amount = Decimal(total) if total is not None else sum((item.total.amount for item in line_items), Decimal('0'))
    return PurchaseOrder(
        id=f"id-{po_number}",
        po_number=po_number,
        date=date(2024, 1, 2),
        supplier_id=SUPPLIER.id,
        line_items=line_items,
        total=Money(amount, currency),
        currency=currency
    )


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def static_rates():
    """Rate source with a few fixed rates; ``fetch_count`` counts calls."""
    return StaticRateSource({
        (CurrencyCode.USD, CurrencyCode.EUR): 0.85,
        (CurrencyCode.GBP, CurrencyCode.USD): 1.25,
        (CurrencyCode.AUD, CurrencyCode.USD): 0.65,
    })
