"""Price source protocol, currency normalization and a fixture-backed source."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from ..core.constants import BASE_CURRENCY, DEFAULT_CONDITION
from ..core.types import PriceQuery, RawPriceObservation
from ..match.fuzzy import normalize
from ..utils.error_handler import ErrorContext, PricingError, validate_required_fields
from ..utils.log import LoggerMixin, get_logger

logger = get_logger(__name__)


class PriceSource(Protocol):
    name: str

    async def search(self, query: PriceQuery) -> List[RawPriceObservation]:
        ...


def currency_rates(eur_usd: float) -> Dict[str, float]:
    """Static conversion table into the base currency."""
    return {BASE_CURRENCY: 1.0, "EUR": eur_usd}


def normalize_price(price: float, currency: str, rates: Dict[str, float]) -> Optional[float]:
    """Convert a price into the base currency; None for unsupported currencies."""
    rate = rates.get(currency.upper())
    if rate is None:
        logger.debug("Unsupported currency dropped", currency=currency, price=price)
        return None
    return round(float(price) * rate, 2)


def parse_observed_at(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO or ``YYYY/MM/DD`` timestamps as UTC; None when unusable."""
    if not value:
        return None
    text = value.strip()
    for parser in (datetime.fromisoformat, lambda s: datetime.strptime(s, "%Y/%m/%d")):
        try:
            parsed = parser(text)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def make_observation(
    source: str,
    price: Any,
    currency: str,
    rates: Dict[str, float],
    observed_at: Optional[datetime],
    condition: str = DEFAULT_CONDITION,
    listing_url: Optional[str] = None,
) -> Optional[RawPriceObservation]:
    """Build an observation, or None for non-positive prices and unknown currencies."""
    try:
        value = float(price)
    except (TypeError, ValueError):
        return None
    if value <= 0:
        return None
    normalized = normalize_price(value, currency, rates)
    if normalized is None:
        return None
    return RawPriceObservation(
        source=source,
        price=value,
        currency=currency.upper(),
        normalized_price=normalized,
        observed_at=observed_at,
        condition=condition,
        listing_url=listing_url,
    )


class StaticPriceSource(LoggerMixin):
    """
    Serves observations from a JSON fixture.

    The file holds a list of records with ``card_name``, ``price`` and
    ``currency`` plus optional ``set_name``, ``observed_at``, ``condition``
    and ``listing_url``.
    """

    def __init__(self, path: Union[str, Path], rates: Dict[str, float], name: str = "static"):
        self.name = name
        self.path = Path(path)
        self.rates = rates
        self._records: Optional[List[Dict[str, Any]]] = None

    def _load(self) -> List[Dict[str, Any]]:
        if self._records is None:
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise PricingError(
                    "Could not load price fixture", details={"path": str(self.path), "error": str(e)}
                ) from e
            records = data.get("observations", []) if isinstance(data, dict) else data
            context = ErrorContext("load_price_fixture", __name__, "_load")
            for record in records:
                validate_required_fields(record, ["card_name", "price", "currency"], context)
            self._records = records
        return self._records

    async def search(self, query: PriceQuery) -> List[RawPriceObservation]:
        wanted_name = normalize(query.card_name)
        wanted_set = normalize(query.set_name) if query.set_name else None
        observations = []
        for record in self._load():
            if normalize(record["card_name"]) != wanted_name:
                continue
            if wanted_set and record.get("set_name") and normalize(record["set_name"]) != wanted_set:
                continue
            observation = make_observation(
                self.name,
                record["price"],
                record["currency"],
                self.rates,
                parse_observed_at(record.get("observed_at")),
                record.get("condition", query.condition),
                record.get("listing_url"),
            )
            if observation is not None:
                observations.append(observation)

        self.logger.debug("Fixture observations matched", card_name=query.card_name, count=len(observations))
        return observations
