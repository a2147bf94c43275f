"""
Invoice to purchase order matching engine.

Provides description similarity, line item scoring, line item pairing
strategies and the candidate ranking engine.
"""

from .text_similarity import TextSimilarity, similarity
from .line_item_scorer import LineItemComparison, LineItemScorer, relative_difference
from .pairing import (
    GreedyPairingStrategy, LineItemPair, OptimalPairingStrategy, PairingStrategy,
    create_pairing_strategy
)
from .reconciliation_engine import NO_MATCH_REASON, ReconciliationEngine

__all__ = [
    "TextSimilarity",
    "similarity",
    "LineItemComparison",
    "LineItemScorer",
    "relative_difference",
    "GreedyPairingStrategy",
    "LineItemPair",
    "OptimalPairingStrategy",
    "PairingStrategy",
    "create_pairing_strategy",
    "NO_MATCH_REASON",
    "ReconciliationEngine"
]
