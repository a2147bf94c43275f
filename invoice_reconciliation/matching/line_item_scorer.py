"""
Line item scoring for invoice to purchase order reconciliation.

Compares one invoice line item with one purchase order line item using
description similarity plus relative quantity and unit price tolerances.
Invoice prices are converted into the purchase order currency first when
the two differ.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from invoice_reconciliation.models import LineItem, MatchingError, ReconciliationSettings
from .text_similarity import TextSimilarity

import logging
logger = logging.getLogger(__name__)

DESCRIPTION_WEIGHT = 0.4
QUANTITY_WEIGHT = 0.3
PRICE_WEIGHT = 0.3


def relative_difference(actual: Union[Decimal, int, float],
                        reference: Union[Decimal, int, float]) -> Optional[float]:
    """
    Return ``|actual - reference| / reference``, or None when the reference is zero.
    """
    if reference == 0:
        return None
    return float(abs(Decimal(str(actual)) - Decimal(str(reference))) / abs(Decimal(str(reference))))


@dataclass
class LineItemComparison:
    """Full breakdown of one invoice line item against one PO line item."""
    invoice_item_id: str
    po_item_id: str
    description_similarity: float
    quantity_difference: Optional[float]  # None when the PO quantity is zero
    price_difference: Optional[float]  # None when the PO unit price is zero
    matches: bool
    score: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'invoice_item_id': self.invoice_item_id,
            'po_item_id': self.po_item_id,
            'description_similarity': self.description_similarity,
            'quantity_difference': self.quantity_difference,
            'price_difference': self.price_difference,
            'matches': self.matches,
            'score': self.score
        }


class LineItemScorer:
    """
    Scores invoice line items against purchase order line items.

    ``matches`` is the eligibility gate: description similarity at or above
    the threshold and both relative differences within tolerance.
    ``score`` is the weighted sum
    ``0.4 * similarity + 0.3 * (1 - qty_diff) + 0.3 * (1 - price_diff)``
    and is computed independently of ``matches``.
    """

    def __init__(self, settings: Optional[ReconciliationSettings] = None,
                 converter: Optional[Any] = None,
                 text_similarity: Optional[TextSimilarity] = None):
        """
        Initialize line item scorer.

        Args:
            settings: Thresholds and tolerances (defaults if None)
            converter: CurrencyConverter or RateSnapshot for cross-currency prices
            text_similarity: Description similarity implementation
        """
        self.logger = logging.getLogger(f"{__name__}.LineItemScorer")
        self.settings = settings or ReconciliationSettings()
        self.converter = converter
        self.text_similarity = text_similarity or TextSimilarity()

    def description_similarity(self, inv_item: LineItem, po_item: LineItem) -> float:
        """Case-insensitive similarity of the two descriptions."""
        return self.text_similarity.similarity(inv_item.description, po_item.description)

    def quantity_difference(self, inv_item: LineItem, po_item: LineItem) -> Optional[float]:
        """Relative quantity difference against the PO quantity."""
        return relative_difference(inv_item.quantity, po_item.quantity)

    def price_difference(self, inv_item: LineItem, po_item: LineItem,
                         converter: Optional[Any] = None,
                         as_of: Optional[date] = None) -> Optional[float]:
        """
        Relative unit price difference against the PO unit price.

        Args:
            inv_item: Invoice line item
            po_item: Purchase order line item
            converter: Converter overriding the scorer's own for this call
            as_of: Rate date for the conversion

        Returns:
            Relative difference, or None when the PO unit price is zero

        Raises:
            MatchingError: If currencies differ and no converter is available
            RateFetchError: If the conversion rate cannot be obtained
        """
        invoice_price = inv_item.unit_price
        reference = po_item.unit_price

        if invoice_price.currency != reference.currency:
            if converter is None:
                converter = self.converter
            if converter is None:
                raise MatchingError(
                    f"Cannot compare {invoice_price.currency.value} and {reference.currency.value} "
                    f"prices without a currency converter",
                    {'invoice_item_id': inv_item.id, 'po_item_id': po_item.id}
                )
            invoice_price = converter.convert(invoice_price.amount, invoice_price.currency,
                                              reference.currency, as_of)

        return relative_difference(invoice_price.amount, reference.amount)

    def matches(self, inv_item: LineItem, po_item: LineItem,
                converter: Optional[Any] = None, as_of: Optional[date] = None) -> bool:
        """
        Decide whether a PO line item is eligible to represent an invoice line item.

        Checks run cheapest first; a zero PO quantity or price is a non-match.
        """
        similarity = self.description_similarity(inv_item, po_item)
        if similarity < self.settings.description_threshold:
            return False

        quantity_diff = self.quantity_difference(inv_item, po_item)
        if quantity_diff is None or quantity_diff > self.settings.quantity_tolerance:
            return False

        price_diff = self.price_difference(inv_item, po_item, converter, as_of)
        if price_diff is None or price_diff > self.settings.price_tolerance:
            return False

        return True

    def score(self, inv_item: LineItem, po_item: LineItem,
              converter: Optional[Any] = None, as_of: Optional[date] = None) -> float:
        """
        Weighted similarity score of a line item pair.

        A zero PO reference contributes 0 for that component. The result is
        not clamped unless ``clamp_item_scores`` is set, so it can go below 0
        when a relative difference exceeds 1.
        """
        similarity = self.description_similarity(inv_item, po_item)
        quantity_diff = self.quantity_difference(inv_item, po_item)
        price_diff = self.price_difference(inv_item, po_item, converter, as_of)
        return self._weighted_score(similarity, quantity_diff, price_diff)

    def compare(self, inv_item: LineItem, po_item: LineItem,
                converter: Optional[Any] = None, as_of: Optional[date] = None) -> LineItemComparison:
        """
        Compute every metric for a line item pair in one pass.

        Returns:
            LineItemComparison with similarity, differences, eligibility and score
        """
        similarity = self.description_similarity(inv_item, po_item)
        quantity_diff = self.quantity_difference(inv_item, po_item)
        price_diff = self.price_difference(inv_item, po_item, converter, as_of)

        matches = (
            similarity >= self.settings.description_threshold
            and quantity_diff is not None and quantity_diff <= self.settings.quantity_tolerance
            and price_diff is not None and price_diff <= self.settings.price_tolerance
        )

        comparison = LineItemComparison(
            invoice_item_id=inv_item.id,
            po_item_id=po_item.id,
            description_similarity=similarity,
            quantity_difference=quantity_diff,
            price_difference=price_diff,
            matches=matches,
            score=self._weighted_score(similarity, quantity_diff, price_diff)
        )

        self.logger.debug(f"Line item '{inv_item.description}' vs '{po_item.description}': "
                          f"similarity={similarity:.3f} qty_diff={quantity_diff} "
                          f"price_diff={price_diff} matches={matches}")
        return comparison

    def _weighted_score(self, similarity: float, quantity_diff: Optional[float],
                        price_diff: Optional[float]) -> float:
        quantity_score = 0.0 if quantity_diff is None else 1 - quantity_diff
        price_score = 0.0 if price_diff is None else 1 - price_diff

        score = (similarity * DESCRIPTION_WEIGHT
                 + quantity_score * QUANTITY_WEIGHT
                 + price_score * PRICE_WEIGHT)

        if self.settings.clamp_item_scores:
            score = min(1.0, max(0.0, score))
        return score
