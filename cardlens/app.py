"""Application wiring: builds the orchestrator from settings."""

from pathlib import Path
from typing import List, Optional, Union

from .authenticity.scorer import AuthenticityScorer
from .extract.features import HttpFeatureExtractor, JsonFeatureExtractor
from .notify.events import EventSink, JsonlEventSink, LogEventSink
from .pipeline.aggregator import CardAggregator
from .pipeline.orchestrator import Orchestrator
from .pricing.aggregator import PriceAggregator
from .pricing.poketcg import PokemonTCGSource
from .pricing.sources import PriceSource, StaticPriceSource, currency_rates
from .reasoning.client import DisabledReasoningClient, HttpReasoningClient
from .reasoning.reasoner import MetadataReasoner
from .store.cache import TTLCache
from .store.cards import CardStore
from .store.images import LocalImageStore
from .utils.config import Settings, ensure_data_dirs, settings
from .utils.retry import RetryPolicy
from .utils.validation import validate_url


def build_orchestrator(
    config: Optional[Settings] = None,
    features_root: Optional[Union[str, Path]] = None,
    prices_path: Optional[Union[str, Path]] = None,
    offline: bool = False,
) -> Orchestrator:
    """
    Wire every collaborator from settings.

    Args:
        config: Settings to use; the global settings by default
        features_root: Directory holding ``*.features.json`` files
        prices_path: Optional JSON fixture of price observations
        offline: Skip every network collaborator
    """
    config = config or settings
    ensure_data_dirs(config)
    rates = currency_rates(config.EUR_USD_RATE)

    if config.FEATURES_URL and not offline:
        extractor = HttpFeatureExtractor(
            validate_url(config.FEATURES_URL), config.FEATURES_TIMEOUT_S, api_key=config.FEATURES_API_KEY
        )
    else:
        extractor = JsonFeatureExtractor(features_root or config.IMAGE_ROOT)

    if config.REASONING_URL and not offline:
        client = HttpReasoningClient(
            validate_url(config.REASONING_URL), config.REASONING_API_KEY, config.REASONING_TIMEOUT_S
        )
    else:
        client = DisabledReasoningClient()
    reasoner = MetadataReasoner(
        client,
        timeout_s=config.REASONING_TIMEOUT_S,
        max_tokens=config.REASONING_MAX_TOKENS,
        temperature=config.REASONING_TEMPERATURE,
    )

    sources: List[PriceSource] = []
    if not offline:
        sources.append(PokemonTCGSource(rates, config.POKEMON_TCG_API_KEY, timeout_s=config.SOURCE_TIMEOUT_S))
    if prices_path:
        sources.append(StaticPriceSource(prices_path, rates))
    pricing = PriceAggregator(
        sources,
        TTLCache(config.CACHE_DB_PATH),
        observation_ttl_s=config.PRICE_CACHE_TTL_SECONDS,
        result_ttl_s=config.PRICE_RESULT_TTL_SECONDS,
        source_timeout_s=config.SOURCE_TIMEOUT_S,
    )

    sink: EventSink = LogEventSink() if config.EVENT_SINK == "log" else JsonlEventSink(config.EVENTS_PATH)
    store = CardStore(config.CARD_DB_PATH, claim_ttl_s=config.RUN_CLAIM_TTL_S)
    return Orchestrator(
        extractor=extractor,
        reasoner=reasoner,
        pricing=pricing,
        scorer=AuthenticityScorer(fake_threshold=config.FAKE_THRESHOLD),
        aggregator=CardAggregator(store, sink),
        store=store,
        images=LocalImageStore(config.IMAGE_ROOT),
        stage_policy=RetryPolicy(
            max_attempts=config.STAGE_MAX_ATTEMPTS,
            base_delay=config.STAGE_BASE_DELAY_S,
            max_delay=config.STAGE_MAX_DELAY_S,
        ),
        branch_timeout_s=config.BRANCH_TIMEOUT_S,
        window_days=config.PRICING_WINDOW_DAYS,
    )


def main():
    """Main entry point that runs the CLI app."""
    from .cli import app

    app()


if __name__ == "__main__":
    main()
