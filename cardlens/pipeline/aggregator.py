"""
Result aggregation: merge both branch results into one card write.

The write is a single-record operation so pricing and authenticity fields
always land together. A completion event follows a successful write.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from ..core.types import (
    AuthenticityResult,
    Card,
    CardMetadata,
    CardUpdate,
    ImageRefs,
    PricingResult,
)
from ..notify.events import CardEvent, EventSink
from ..store.cards import CardStore
from ..utils.error_handler import ErrorContext, safe_execute
from ..utils.log import LoggerMixin


class PersistMode(str, Enum):
    UPSERT = "upsert"
    UPDATE = "update"


def build_update(
    metadata: CardMetadata,
    pricing: PricingResult,
    authenticity: AuthenticityResult,
    image_refs: Optional[ImageRefs] = None,
) -> CardUpdate:
    """Combine display fields, pricing and authenticity into one update."""
    return CardUpdate(
        name=metadata.name.value,
        set_name=metadata.card_set.top_value(),
        number=metadata.collector_number.value,
        rarity=metadata.rarity.value,
        id_confidence=metadata.overall_confidence,
        value_low=pricing.value_low,
        value_median=pricing.value_median,
        value_high=pricing.value_high,
        comps_count=pricing.comps_count,
        sources=list(pricing.sources),
        pricing_message=pricing.message,
        pricing_confidence=pricing.confidence,
        authenticity_score=authenticity.authenticity_score,
        authenticity_signals=authenticity.signals,
        fake_detected=authenticity.fake_detected,
        front_image_ref=image_refs.front if image_refs else None,
        back_image_ref=image_refs.back if image_refs else None,
        valuation=pricing.valuation,
    )


def build_valuation_event(card: Card, run_id: str) -> CardEvent:
    """Minimal fields downstream consumers need about a completed valuation."""
    detail: Dict[str, Any] = {
        "cardId": card.card_id,
        "userId": card.owner_id,
        "name": card.name,
        "set": card.set_name,
        "valueLow": card.value_low,
        "valueMedian": card.value_median,
        "valueHigh": card.value_high,
        "authenticityScore": card.authenticity_score,
        "fakeDetected": card.fake_detected,
        "pricingConfidence": card.pricing_confidence,
        "pricingSources": list(card.sources),
        "valuationTrend": card.valuation.trend if card.valuation else None,
        "valuationFairValue": card.valuation.fair_value if card.valuation else None,
        "requestId": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return CardEvent(detail=detail)


class CardAggregator(LoggerMixin):
    """Persists a merged update and announces it."""

    def __init__(self, store: CardStore, sink: EventSink):
        self.store = store
        self.sink = sink

    def _write(self, owner_id: str, card_id: str, update: CardUpdate, mode: PersistMode) -> Card:
        if mode is PersistMode.UPSERT:
            # Freshly created cards may not be readable yet; write without reading
            return self.store.upsert_results(owner_id, card_id, update)
        return self.store.update_results(owner_id, card_id, update)

    async def persist(
        self,
        owner_id: str,
        card_id: str,
        update: CardUpdate,
        mode: PersistMode = PersistMode.UPSERT,
        run_id: str = "",
    ) -> Card:
        """
        Write the update and emit a completion event.

        Raises:
            NotFoundError: In update mode, if the card is missing or deleted
            ConcurrencyConflict: In update mode, if the card was deleted mid-write
        """
        ctx = self.log_start("persist_results", owner_id=owner_id, card_id=card_id, mode=mode.value)
        try:
            card = await asyncio.to_thread(self._write, owner_id, card_id, update, mode)
        except Exception as e:
            self.log_error(ctx, e)
            raise
        self.log_success(ctx, value_median=card.value_median, authenticity_score=card.authenticity_score)

        # Emission is best-effort; the write stands either way
        event = build_valuation_event(card, run_id)
        await asyncio.to_thread(
            safe_execute,
            self.sink.emit,
            event,
            context=ErrorContext("emit_event", __name__, "persist", {"card_id": card_id}),
            logger=self.logger,
        )
        return card
