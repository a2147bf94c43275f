"""
Reconciliation engine: ranks purchase orders against an invoice.

Scores the invoice against every candidate purchase order, admits the
candidates whose confidence reaches the threshold, ranks them and explains
the decision.
"""

import time
from datetime import date, datetime
from typing import Any, List, Optional, Sequence

from invoice_reconciliation.models import (
    Invoice, MatchCandidate, MatchResult, MatchScore, PurchaseOrder,
    RateSourceConfig, ReconciliationSettings
)
from .line_item_scorer import LineItemScorer
from .pairing import LineItemPair, PairingStrategy, create_pairing_strategy

import logging
logger = logging.getLogger(__name__)

NO_MATCH_REASON = "No matching purchase orders found"


class ReconciliationEngine:
    """
    Matches an invoice against candidate purchase orders.

    Candidate confidence is the mean item score over the matched line item
    pairs only (0 when nothing matched). Candidates at or above
    ``confidence_threshold`` are ranked by confidence with a stable sort,
    so the earlier candidate wins ties.

    A RateFetchError raised while scoring any candidate propagates to the
    caller and aborts the whole call.
    """

    def __init__(self, settings: Optional[ReconciliationSettings] = None,
                 converter: Optional[Any] = None,
                 pairing_strategy: Optional[PairingStrategy] = None,
                 scorer: Optional[LineItemScorer] = None):
        """
        Initialize reconciliation engine.

        Args:
            settings: Thresholds and policies (defaults if None)
            converter: CurrencyConverter for cross-currency candidates
            pairing_strategy: Line item pairing policy (from settings if None)
            scorer: Line item scorer (built from settings if None)
        """
        self.logger = logging.getLogger(f"{__name__}.ReconciliationEngine")
        self.settings = settings or ReconciliationSettings()
        self.converter = converter
        self.pairing_strategy = pairing_strategy or create_pairing_strategy(self.settings.pairing_strategy)
        self.scorer = scorer or LineItemScorer(self.settings)

    @classmethod
    def from_settings(cls, settings: Optional[ReconciliationSettings] = None,
                      rate_source_config: Optional[RateSourceConfig] = None) -> 'ReconciliationEngine':
        """
        Build an engine wired to the exchange rate API.

        Settings are validated first.

        Args:
            settings: Engine settings (from the environment if None)
            rate_source_config: Rate API configuration (from the environment if None)

        Returns:
            Configured ReconciliationEngine

        Raises:
            ConfigurationError: If the settings are invalid
        """
        from invoice_reconciliation.config.validation import SettingsValidator
        from invoice_reconciliation.connectors.api_connector import ExchangeRateAPIConnector
        from invoice_reconciliation.currency.converter import CurrencyConverter

        settings = settings or ReconciliationSettings.from_env()
        SettingsValidator().validate(settings).raise_if_invalid()

        rate_source = ExchangeRateAPIConnector(rate_source_config or RateSourceConfig.from_env())
        converter = CurrencyConverter(rate_source, ttl_seconds=settings.rate_cache_ttl_seconds)
        return cls(settings=settings, converter=converter)

    def match_invoice(self, invoice: Invoice, candidates: Sequence[PurchaseOrder]) -> MatchResult:
        """
        Reconcile an invoice against candidate purchase orders.

        Args:
            invoice: Invoice to reconcile
            candidates: Purchase orders to evaluate, in priority order

        Returns:
            MatchResult with the best match, up to ``max_alternatives``
            alternatives and human-readable reasons

        Raises:
            RateFetchError: If a needed exchange rate cannot be obtained
        """
        start_time = time.time()
        # One consistent rate per currency pair for the whole call
        converter = self.converter.snapshot() if self.converter is not None else None

        admitted: List[MatchCandidate] = []
        for po in candidates:
            score = self.score_candidate(invoice, po, converter)
            if score.confidence >= self.settings.confidence_threshold:
                admitted.append(MatchCandidate(purchase_order=po, score=score))

        ranked = sorted(admitted, key=lambda c: c.score.confidence, reverse=True)
        best = ranked[0] if ranked else None

        result = MatchResult(
            best_match=best.purchase_order if best else None,
            confidence=best.score.confidence if best else 0.0,
            alternatives=tuple(ranked[1:1 + self.settings.max_alternatives]),
            reasons=tuple(self.explain_match(invoice, best))
        )

        duration = time.time() - start_time
        if best:
            self.logger.info(f"Invoice {invoice.invoice_number} matched PO {best.purchase_order.po_number} "
                             f"with confidence {best.score.confidence:.3f} "
                             f"({len(ranked)}/{len(candidates)} candidates admitted, {duration:.3f}s)")
        else:
            self.logger.info(f"Invoice {invoice.invoice_number}: no match among "
                             f"{len(candidates)} candidates ({duration:.3f}s)")
        return result

    def score_candidate(self, invoice: Invoice, po: PurchaseOrder,
                        converter: Optional[Any] = None) -> MatchScore:
        """
        Score one purchase order against the invoice.

        Args:
            invoice: Invoice being reconciled
            po: Candidate purchase order
            converter: Converter override (defaults to the engine's converter)

        Returns:
            MatchScore with confidence and matched/total line item counts
        """
        converter = converter if converter is not None else self.converter
        pairs = self.pair_line_items(invoice, po, converter)
        confidence = self._aggregate(pairs, len(invoice.line_items))

        self.logger.debug(f"Candidate PO {po.po_number}: {len(pairs)}/{len(invoice.line_items)} "
                          f"line items matched, confidence {confidence:.3f}")
        return MatchScore(
            confidence=confidence,
            matched_items=len(pairs),
            total_items=len(invoice.line_items)
        )

    def pair_line_items(self, invoice: Invoice, po: PurchaseOrder,
                        converter: Optional[Any] = None) -> List[LineItemPair]:
        """Pair the invoice line items with this PO's line items."""
        return self.pairing_strategy.pair(
            invoice.line_items, po.line_items, self.scorer,
            converter if converter is not None else self.converter,
            self._rate_date(invoice)
        )

    def explain_match(self, invoice: Invoice, candidate: Optional[MatchCandidate]) -> List[str]:
        """
        Build human-readable reasons for the chosen candidate.

        Args:
            invoice: Invoice being reconciled
            candidate: Best candidate, or None when nothing was admitted

        Returns:
            List of reason strings
        """
        if candidate is None:
            return [NO_MATCH_REASON]

        po = candidate.purchase_order
        score = candidate.score
        reasons = [
            f"Matched {score.matched_items} of {score.total_items} line items",
            f"Overall confidence: {score.confidence * 100:.1f}%"
        ]

        if invoice.currency != po.currency:
            reasons.append(f"Currency conversion applied: {invoice.currency.value} → {po.currency.value}")

        return reasons

    def _aggregate(self, pairs: List[LineItemPair], total_items: int) -> float:
        if not pairs:
            return 0.0

        confidence = sum(pair.score for pair in pairs) / len(pairs)
        if self.settings.penalize_unmatched_items and total_items:
            confidence *= len(pairs) / total_items
        return confidence

    def _rate_date(self, invoice: Invoice) -> Optional[date]:
        if not self.settings.use_invoice_date_rates:
            return None
        if isinstance(invoice.date, datetime):
            return invoice.date.date()
        return invoice.date
