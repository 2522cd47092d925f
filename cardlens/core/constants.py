from typing import Dict, Final, Tuple

# Fuzzy matching
FUZZY_DEFAULT_THRESHOLD: Final[float] = 0.7
CORRECTION_THRESHOLD: Final[float] = 0.8

# OCR layout regions, by normalized bounding box top
TOP_REGION_MAX: Final[float] = 0.3
BOTTOM_REGION_MIN: Final[float] = 0.7

# Fallback reasoning
FALLBACK_NAME_CONFIDENCE_FACTOR: Final[float] = 0.7
FALLBACK_OVERALL_FACTOR: Final[float] = 0.5
NO_OCR_RATIONALE: Final[str] = "No OCR text detected in image."

# Reasoning capability
REASONING_MAX_TOKENS: Final[int] = 4096
REASONING_TEMPERATURE: Final[float] = 0.15
REASONING_BACKOFF_BASE_S: Final[float] = 1.0
REASONING_ATTEMPTS: Final[int] = 3

# Confidence thresholds used when presenting results
CONFIDENCE_ACCEPT: Final[float] = 0.85
CONFIDENCE_REVIEW: Final[float] = 0.70

# Pricing
UNKNOWN_SET: Final[str] = "unknown"
UNKNOWN_CARD_NAME: Final[str] = "Unknown Card"
DEFAULT_CONDITION: Final[str] = "Near Mint"
PRICE_CACHE_TTL_S: Final[int] = 3600
PRICING_WINDOW_DAYS: Final[int] = 14
PRICE_PERCENTILES: Final[Tuple[int, int, int]] = (10, 50, 90)
COMPS_FOR_FULL_CONFIDENCE: Final[int] = 20
SOURCES_UNAVAILABLE_MESSAGE: Final[str] = "All price sources unavailable"

# Valuation trend: median of the newer half of dated sales against the older half
TREND_MIN_DATED_COMPS: Final[int] = 4
TREND_CHANGE_THRESHOLD: Final[float] = 0.05
TREND_RISING: Final[str] = "rising"
TREND_FALLING: Final[str] = "falling"
TREND_STABLE: Final[str] = "stable"
BASE_CURRENCY: Final[str] = "USD"

# HTTP
BACKOFF_S = [0.2, 1.0, 3.0]
TRANSIENT_HTTP_STATUSES: Final[Tuple[int, ...]] = (429, 500, 502, 503, 504)
POKEMON_TCG_BASE_URL: Final[str] = "https://api.pokemontcg.io/v2/cards"
POKEMON_TCG_PAGE_SIZE: Final[int] = 10

# Content rejection messages from the image analysis service
CONTENT_REJECTION_MARKERS: Final[Tuple[str, ...]] = (
    "does not appear to be a trading card",
    "inappropriate content",
)

# Authenticity
AUTHENTICITY_WEIGHTS: Final[Dict[str, float]] = {
    "visual_hash_confidence": 0.20,
    "text_match_confidence": 0.25,
    "holo_pattern_confidence": 0.20,
    "border_consistency": 0.20,
    "font_validation": 0.15,
}
FAKE_THRESHOLD: Final[float] = 0.5
NEUTRAL_SIGNAL: Final[float] = 0.5
GLARE_PENALTY: Final[float] = 0.8

# Run claims older than this are treated as abandoned
RUN_CLAIM_TTL_S: Final[int] = 900

# Completion events
EVENT_SOURCE: Final[str] = "cardlens.backend"
EVENT_DETAIL_TYPE: Final[str] = "CardValuationCompleted"

