"""Pokemon TCG API price source (TCGPlayer and Cardmarket blocks)."""

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
from rapidfuzz import fuzz

from ..core.constants import (
    BACKOFF_S,
    DEFAULT_CONDITION,
    POKEMON_TCG_BASE_URL,
    POKEMON_TCG_PAGE_SIZE,
    TRANSIENT_HTTP_STATUSES,
)
from ..core.types import PriceQuery, RawPriceObservation
from ..match.knowledge import is_holographic_indicator
from ..utils.log import LoggerMixin
from .sources import make_observation, parse_observed_at

SOURCE_NAME = "pokemontcg"
_UNSAFE_QUERY_CHARS = re.compile(r"[^\w\s-]")


async def _fetch_json(url: str, params: dict | None, headers: dict | None,
                      timeout: aiohttp.ClientTimeout | None = None) -> dict:
    for i, delay in enumerate([0.0, *BACKOFF_S], start=0):
        if delay:
            await asyncio.sleep(delay)
        async with aiohttp.ClientSession(headers=headers, timeout=timeout) as s:
            async with s.get(url, params=params) as r:
                if r.status in TRANSIENT_HTTP_STATUSES and i < len(BACKOFF_S):
                    continue
                r.raise_for_status()
                return await r.json()
    raise RuntimeError("unreachable")


def build_search_query(query: PriceQuery) -> str:
    """Wildcard name and set clauses plus an exact number clause."""
    conditions = []
    clean_name = _UNSAFE_QUERY_CHARS.sub("", query.card_name).strip()
    if clean_name:
        conditions.append(f'name:"*{clean_name}*"')
    if query.set_name:
        clean_set = _UNSAFE_QUERY_CHARS.sub("", query.set_name).strip()
        if clean_set:
            conditions.append(f'set.name:"*{clean_set}*"')
    if query.number:
        number = query.number.split("/")[0].strip()
        if number:
            conditions.append(f"number:{number}")
    return " ".join(conditions)


def select_price_variant(prices: Optional[Dict[str, Any]], rarity: Optional[str]) -> Optional[Dict[str, Any]]:
    """Pick the TCGPlayer price block that matches the printing implied by rarity."""
    if not prices:
        return None
    lowered = (rarity or "").lower()

    if "reverse" in lowered:
        return prices.get("reverseHolofoil") or prices.get("normal")
    if "1st edition" in lowered:
        return prices.get("1stEditionHolofoil" if "holo" in lowered else "1stEditionNormal") \
            or prices.get("normal")
    if is_holographic_indicator(rarity):
        return prices.get("holofoil") or prices.get("reverseHolofoil") or prices.get("unlimitedHolofoil")
    return prices.get("normal") or prices.get("holofoil")


def extract_comps(
    card: Dict[str, Any],
    rates: Dict[str, float],
    condition: str = DEFAULT_CONDITION,
    rarity: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[RawPriceObservation]:
    """
    Turn one card's price blocks into observations.

    TCGPlayer contributes low, market and high (USD) of the selected variant;
    Cardmarket contributes trend and average sell price (EUR).
    """
    now = now or datetime.now(timezone.utc)
    comps: List[Optional[RawPriceObservation]] = []

    tcg = card.get("tcgplayer") or {}
    variant = select_price_variant(tcg.get("prices"), card.get("rarity") or rarity)
    if variant:
        observed_at = parse_observed_at(tcg.get("updatedAt")) or now
        for key in ("low", "market", "high"):
            comps.append(make_observation(
                SOURCE_NAME, variant.get(key), "USD", rates, observed_at, condition, tcg.get("url")
            ))

    ckm = card.get("cardmarket") or {}
    ckm_prices = ckm.get("prices") or {}
    if ckm_prices:
        observed_at = parse_observed_at(ckm.get("updatedAt")) or now
        for key in ("trendPrice", "averageSellPrice"):
            comps.append(make_observation(
                SOURCE_NAME, ckm_prices.get(key), "EUR", rates, observed_at, condition, ckm.get("url")
            ))

    return [c for c in comps if c is not None]


class PokemonTCGSource(LoggerMixin):
    """Price source backed by api.pokemontcg.io."""

    name = SOURCE_NAME

    def __init__(self, rates: Dict[str, float], api_key: Optional[str] = None,
                 max_cards: int = 3, timeout_s: float = 10.0):
        self.rates = rates
        self.api_key = api_key
        self.max_cards = max_cards
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)

    def _headers(self) -> Dict[str, str]:
        return {"X-Api-Key": self.api_key} if self.api_key else {}

    async def _search_cards(self, q: str) -> List[Dict[str, Any]]:
        params = {"q": q, "pageSize": POKEMON_TCG_PAGE_SIZE}
        body = await _fetch_json(POKEMON_TCG_BASE_URL, params, self._headers(), self.timeout)
        return body.get("data", [])

    async def search(self, query: PriceQuery) -> List[RawPriceObservation]:
        ctx = self.log_start("pokemontcg_search", card_name=query.card_name, set_name=query.set_name)

        cards = await self._search_cards(build_search_query(query))
        if not cards and (query.set_name or query.number):
            # Set names and numbers from OCR are often wrong; retry on name alone
            simple = PriceQuery(card_name=query.card_name, condition=query.condition)
            cards = await self._search_cards(build_search_query(simple))

        if not cards:
            self.log_success(ctx, cards=0, comps=0)
            return []

        wanted = query.card_name.lower()
        cards.sort(key=lambda c: fuzz.ratio(wanted, str(c.get("name", "")).lower()), reverse=True)

        comps: List[RawPriceObservation] = []
        for card in cards[:self.max_cards]:
            comps.extend(extract_comps(card, self.rates, query.condition, query.rarity))

        self.log_success(ctx, cards=len(cards), comps=len(comps))
        return comps
