"""
Line item pairing strategies.

A pairing strategy decides which purchase order line item represents each
invoice line item. Each PO line item is used at most once per candidate.
The greedy strategy takes the first eligible PO line in order; the optimal
strategy solves the assignment with the Hungarian algorithm.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Sequence, Set

from invoice_reconciliation.models import ConfigurationError, LineItem, PairingStrategyType
from .line_item_scorer import LineItemScorer

import logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItemPair:
    """An invoice line item paired with the PO line item that represents it."""
    invoice_item: LineItem
    po_item: LineItem
    score: float


class PairingStrategy(ABC):
    """Chooses eligible, non-overlapping line item pairs for one candidate."""

    name = "abstract"

    @abstractmethod
    def pair(self, invoice_items: Sequence[LineItem], po_items: Sequence[LineItem],
             scorer: LineItemScorer, converter: Optional[Any] = None,
             as_of: Optional[date] = None) -> List[LineItemPair]:
        """
        Pair invoice line items with purchase order line items.

        Args:
            invoice_items: Invoice line items in document order
            po_items: Purchase order line items in document order
            scorer: Scorer providing ``matches`` and ``score``
            converter: Converter used for cross-currency prices
            as_of: Rate date for conversions

        Returns:
            Pairs in invoice line item order; unmatched invoice items are omitted
        """
        pass


class GreedyPairingStrategy(PairingStrategy):
    """
    First-match pairing.

    Each invoice line item, in order, takes the first PO line item (in PO
    order) that ``matches`` and has not been taken yet.
    """

    name = PairingStrategyType.GREEDY.value

    def pair(self, invoice_items: Sequence[LineItem], po_items: Sequence[LineItem],
             scorer: LineItemScorer, converter: Optional[Any] = None,
             as_of: Optional[date] = None) -> List[LineItemPair]:
        pairs = []
        used: Set[int] = set()

        for inv_item in invoice_items:
            for index, po_item in enumerate(po_items):
                if index in used:
                    continue
                if scorer.matches(inv_item, po_item, converter, as_of):
                    used.add(index)
                    pairs.append(LineItemPair(inv_item, po_item, scorer.score(inv_item, po_item, converter, as_of)))
                    break

        return pairs


class OptimalPairingStrategy(PairingStrategy):
    """
    Assignment-based pairing.

    Maximizes the number of eligible pairs first and the total score second,
    using the Hungarian (Kuhn-Munkres) algorithm on a square cost matrix.
    """

    name = PairingStrategyType.OPTIMAL.value

    def pair(self, invoice_items: Sequence[LineItem], po_items: Sequence[LineItem],
             scorer: LineItemScorer, converter: Optional[Any] = None,
             as_of: Optional[date] = None) -> List[LineItemPair]:
        n = len(invoice_items)
        m = len(po_items)
        if n == 0 or m == 0:
            return []

        size = max(n, m)
        # Any assignment of eligible pairs costs at most ``size``; one forbidden
        # cell costs more, so cardinality always wins over score.
        forbidden = float(size + 1)
        cost = [[forbidden] * size for _ in range(size)]
        scores = {}

        for i, inv_item in enumerate(invoice_items):
            for j, po_item in enumerate(po_items):
                comparison = scorer.compare(inv_item, po_item, converter, as_of)
                if comparison.matches:
                    scores[(i, j)] = comparison.score
                    cost[i][j] = 1.0 - comparison.score

        if not scores:
            return []

        assignment = hungarian_algorithm(cost)

        pairs = []
        for i, j in sorted(assignment):
            if (i, j) in scores:
                pairs.append(LineItemPair(invoice_items[i], po_items[j], scores[(i, j)]))
        return pairs


def hungarian_algorithm(cost: List[List[float]]) -> List[tuple]:
    """
    Minimum cost perfect assignment on a square matrix.

    Returns list of (row, column) pairs, one per row.
    """
    size = len(cost)
    u = [0.0] * (size + 1)
    v = [0.0] * (size + 1)
    p = [0] * (size + 1)
    way = [0] * (size + 1)

    for i in range(1, size + 1):
        p[0] = i
        j0 = 0
        minv = [float('inf')] * (size + 1)
        used = [False] * (size + 1)

        while p[j0] != 0:
            used[j0] = True
            i0 = p[j0]
            delta = float('inf')
            j1 = 0

            for j in range(1, size + 1):
                if not used[j]:
                    cur = cost[i0 - 1][j - 1] - u[i0] - v[j]
                    if cur < minv[j]:
                        minv[j] = cur
                        way[j] = j0
                    if minv[j] < delta:
                        delta = minv[j]
                        j1 = j

            for j in range(size + 1):
                if used[j]:
                    u[p[j]] += delta
                    v[j] -= delta
                else:
                    minv[j] -= delta

            j0 = j1

        while j0:
            j1 = way[j0]
            p[j0] = p[j1]
            j0 = j1

    return [(p[j] - 1, j - 1) for j in range(1, size + 1) if p[j] != 0]


def create_pairing_strategy(name: str) -> PairingStrategy:
    """
    Build a pairing strategy from its configured name.

    Raises:
        ConfigurationError: If the name is not a known strategy
    """
    strategies = {
        PairingStrategyType.GREEDY.value: GreedyPairingStrategy,
        PairingStrategyType.OPTIMAL.value: OptimalPairingStrategy,
    }
    try:
        return strategies[str(name).lower()]()
    except KeyError:
        raise ConfigurationError(f"Unknown pairing strategy: {name}")
