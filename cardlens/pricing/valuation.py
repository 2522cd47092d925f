"""
Deterministic valuation summary.

Fair value is the median of recent sales. The trend compares the median of
the newer half of dated sales with the median of the older half.
"""

from typing import Sequence

import numpy as np

from ..core.constants import (
    TREND_CHANGE_THRESHOLD,
    TREND_FALLING,
    TREND_MIN_DATED_COMPS,
    TREND_RISING,
    TREND_STABLE,
)
from ..core.types import PricingResult, RawPriceObservation, ValuationSummary

RECOMMENDATIONS = {
    TREND_RISING: "Hold: recent sales are trending up",
    TREND_FALLING: "Consider selling soon: recent sales are trending down",
    TREND_STABLE: "Fair value is steady",
}


def price_trend(observations: Sequence[RawPriceObservation]) -> str:
    """Direction of dated sales; too few dated sales read as stable."""
    dated = sorted((o for o in observations if o.observed_at is not None), key=lambda o: o.observed_at)
    if len(dated) < TREND_MIN_DATED_COMPS:
        return TREND_STABLE

    half = len(dated) // 2
    older = float(np.median([o.normalized_price for o in dated[:half]]))
    newer = float(np.median([o.normalized_price for o in dated[-half:]]))
    if older <= 0:
        return TREND_STABLE

    change = (newer - older) / older
    if change > TREND_CHANGE_THRESHOLD:
        return TREND_RISING
    if change < -TREND_CHANGE_THRESHOLD:
        return TREND_FALLING
    return TREND_STABLE


def summarize_valuation(result: PricingResult, observations: Sequence[RawPriceObservation]) -> ValuationSummary:
    if result.comps_count == 0:
        return ValuationSummary(
            fair_value=0.0,
            trend=TREND_STABLE,
            confidence=0.0,
            summary=result.message or "No pricing data available",
            recommendation="Not enough sales data to recommend an action",
        )

    trend = price_trend(observations)
    sources = ", ".join(result.sources)
    return ValuationSummary(
        fair_value=result.value_median,
        trend=trend,
        confidence=result.confidence,
        summary=(
            f"Fair value ${result.value_median:,.2f} from {result.comps_count} sales "
            f"({sources}); range ${result.value_low:,.2f} to ${result.value_high:,.2f}, trend {trend}"
        ),
        recommendation=RECOMMENDATIONS[trend],
    )
