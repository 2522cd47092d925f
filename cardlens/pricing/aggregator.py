"""
Multi-source price aggregation.

Observations from every configured source are merged, cached by card identity
and reduced to low/median/high percentiles with a confidence that grows with
sample size and shrinks with dispersion.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.constants import (
    COMPS_FOR_FULL_CONFIDENCE,
    PRICE_CACHE_TTL_S,
    PRICE_PERCENTILES,
    SOURCES_UNAVAILABLE_MESSAGE,
    UNKNOWN_SET,
)
from ..core.types import PriceQuery, PricingResult, RawPriceObservation
from ..store.cache import TTLCache
from ..utils.error_handler import CacheError
from ..utils.log import LoggerMixin
from .sources import PriceSource
from .valuation import summarize_valuation


def price_cache_key(card_name: str, set_name: Optional[str]) -> str:
    """``name|set`` lowercased and trimmed, with a sentinel for an unknown set."""
    name = (card_name or "").lower().strip()
    set_part = (set_name or "").lower().strip() or UNKNOWN_SET
    return f"{name}|{set_part}"


def dedupe_observations(observations: Iterable[RawPriceObservation]) -> List[RawPriceObservation]:
    seen = set()
    unique = []
    for obs in observations:
        key = (obs.source, obs.normalized_price, obs.observed_at, obs.condition, obs.listing_url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(obs)
    return unique


def within_window(
    observations: Iterable[RawPriceObservation], now: datetime, window_days: int
) -> List[RawPriceObservation]:
    """Drop observations older than the window; undated ones are kept."""
    cutoff = now - timedelta(days=window_days)
    return [o for o in observations if o.observed_at is None or o.observed_at >= cutoff]


def summarize_observations(observations: Sequence[RawPriceObservation]) -> PricingResult:
    """Percentile summary of normalized prices; requires at least one observation."""
    prices = np.array([o.normalized_price for o in observations], dtype=float)
    low, median, high = np.percentile(prices, PRICE_PERCENTILES)

    mean = float(prices.mean())
    cv = float(prices.std()) / mean if mean > 0 else 0.0
    sample_factor = min(len(prices) / COMPS_FOR_FULL_CONFIDENCE, 1.0)
    dispersion_factor = 1.0 / (1.0 + cv)
    confidence = max(0.0, min(1.0, sample_factor * dispersion_factor))

    return PricingResult(
        value_low=round(float(low), 2),
        value_median=round(float(median), 2),
        value_high=round(float(high), 2),
        comps_count=len(prices),
        sources=sorted({o.source for o in observations}),
        confidence=round(confidence, 4),
    )


class PriceAggregator(LoggerMixin):
    """Aggregates observations from independent sources behind two cache tiers."""

    def __init__(
        self,
        sources: Sequence[PriceSource],
        cache: TTLCache,
        observation_ttl_s: float = PRICE_CACHE_TTL_S,
        result_ttl_s: float = 900,
        source_timeout_s: float = 10.0,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.sources = list(sources)
        self.cache = cache
        self.observation_ttl_s = observation_ttl_s
        self.result_ttl_s = result_ttl_s
        self.source_timeout_s = source_timeout_s
        self.now = now

    async def _cache_get(self, key: str):
        try:
            return await asyncio.to_thread(self.cache.get, key)
        except CacheError as e:
            self.logger.warning("Price cache read failed, treating as miss", key=key, error=str(e))
            return None

    async def _cache_set(self, key: str, value, ttl_s: float) -> None:
        try:
            await asyncio.to_thread(self.cache.set, key, value, ttl_s)
        except CacheError as e:
            self.logger.warning("Price cache write failed", key=key, error=str(e))

    async def _query_source(self, source: PriceSource, query: PriceQuery) -> List[RawPriceObservation]:
        return await asyncio.wait_for(source.search(query), timeout=self.source_timeout_s)

    async def collect(self, query: PriceQuery) -> Tuple[List[RawPriceObservation], int]:
        """
        Query every source concurrently; failing sources contribute nothing.

        Returns the merged observations and how many sources failed.
        """
        results = await asyncio.gather(
            *(self._query_source(source, query) for source in self.sources),
            return_exceptions=True,
        )

        merged: List[RawPriceObservation] = []
        failures = 0
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self.logger.warning(
                    "Price source failed",
                    source=getattr(source, "name", type(source).__name__),
                    error=str(result) or type(result).__name__,
                    error_type=type(result).__name__,
                )
                failures += 1
                continue
            merged.extend(result)
        return dedupe_observations(merged), failures

    async def aggregate(
        self,
        query: PriceQuery,
        reuse_result: bool = False,
        force_refresh: bool = False,
    ) -> PricingResult:
        """
        Price a card. Never raises for missing data.

        Args:
            query: Card identity and pricing window
            reuse_result: Serve a cached summary for an identical query
            force_refresh: Skip cached observations and query every source
        """
        key = price_cache_key(query.card_name, query.set_name)
        result_key = f"result:{key}:{query.condition.lower()}:{query.window_days}"
        ctx = self.log_start("price_aggregation", key=key)

        if reuse_result and not force_refresh:
            cached_result = await self._cache_get(result_key)
            if cached_result is not None:
                self.log_success(ctx, tier="result", comps=cached_result["comps_count"])
                return PricingResult.from_dict(cached_result)

        observations: Optional[List[RawPriceObservation]] = None
        tier = "sources"
        outage = False
        if not force_refresh:
            cached = await self._cache_get(f"obs:{key}")
            if cached is not None:
                observations = [RawPriceObservation.from_dict(o) for o in cached]
                tier = "observations"

        if observations is None:
            observations, failures = await self.collect(query)
            outage = bool(self.sources) and failures == len(self.sources)
            # Outages are never cached
            if not outage:
                await self._cache_set(f"obs:{key}", [o.to_dict() for o in observations], self.observation_ttl_s)

        recent = within_window(observations, self.now(), query.window_days)
        label = query.card_name + (f" ({query.set_name})" if query.set_name else "")
        if outage:
            result = PricingResult.empty(f"{SOURCES_UNAVAILABLE_MESSAGE} for {label}")
        elif not recent:
            result = PricingResult.empty(f"No recent sales found for {label}")
        else:
            result = summarize_observations(recent)
        result.valuation = summarize_valuation(result, recent)

        if not outage:
            await self._cache_set(result_key, result.to_dict(), self.result_ttl_s)
        self.log_success(ctx, tier=tier, comps=result.comps_count, confidence=result.confidence,
                         trend=result.valuation.trend)
        return result
