"""
Authenticity scoring from image features and reasoned metadata.

Five signals in [0, 1] are combined with fixed weights. A card is flagged as
a likely fake when the weighted score falls below the configured threshold.
"""

from typing import Dict, List, Optional

from ..core.constants import (
    AUTHENTICITY_WEIGHTS,
    FAKE_THRESHOLD,
    GLARE_PENALTY,
    NEUTRAL_SIGNAL,
)
from ..core.types import AuthenticityResult, AuthenticitySignals, CardMetadata, FeatureEnvelope
from ..match.fuzzy import best_match
from ..match.knowledge import POKEMON_SPECIES, canonical_rarity, is_holographic_indicator
from ..utils.error_handler import ConfigurationError
from ..utils.log import LoggerMixin
from ..utils.validation import clamp_confidence, validate_confidence

SIGNAL_LABELS = {
    "visual_hash_confidence": "image quality",
    "text_match_confidence": "text match",
    "holo_pattern_confidence": "holo pattern",
    "border_consistency": "border symmetry",
    "font_validation": "font metrics",
}


def visual_signal(features: FeatureEnvelope) -> float:
    score = clamp_confidence(features.quality.blur_score)
    if features.quality.glare_detected:
        score *= GLARE_PENALTY
    return score


def text_signal(metadata: CardMetadata) -> float:
    """Half reasoner confidence, half closeness of the name to a known species."""
    name = metadata.name.value
    match = best_match(name, POKEMON_SPECIES, threshold=0.0) if name else None
    name_score = match.confidence if match else 0.0
    return 0.5 * clamp_confidence(metadata.overall_confidence) + 0.5 * name_score


def holo_signal(features: FeatureEnvelope, rarity: Optional[str]) -> float:
    """
    Agreement between the printed rarity and the measured holo variance.

    Holo rarities should shimmer; known non-holo rarities should not. An
    unknown rarity gives no evidence either way.
    """
    variance = clamp_confidence(features.holo_variance)
    if is_holographic_indicator(rarity):
        return variance
    if canonical_rarity(rarity) is not None:
        return 1.0 - 0.5 * variance
    return NEUTRAL_SIGNAL


def border_signal(features: FeatureEnvelope, back_features: Optional[FeatureEnvelope] = None) -> float:
    score = clamp_confidence(features.borders.symmetry_score)
    if back_features is not None:
        score = (score + clamp_confidence(back_features.borders.symmetry_score)) / 2
    return score


def font_signal(features: FeatureEnvelope) -> float:
    metrics = features.font_metrics
    if metrics is None:
        return NEUTRAL_SIGNAL
    variances = [
        clamp_confidence(metrics.kerning_variance),
        clamp_confidence(metrics.alignment_variance),
        clamp_confidence(metrics.font_size_variance),
    ]
    return 1.0 - sum(variances) / len(variances)


class AuthenticityScorer(LoggerMixin):
    """Weighted combination of authenticity signals."""

    def __init__(self, weights: Optional[Dict[str, float]] = None, fake_threshold: float = FAKE_THRESHOLD):
        self.weights = dict(weights or AUTHENTICITY_WEIGHTS)
        unknown = sorted(set(self.weights) - set(SIGNAL_LABELS))
        if unknown or sum(self.weights.values()) <= 0:
            raise ConfigurationError(
                "Authenticity weights must name known signals and sum above zero",
                {"weights": self.weights, "unknown": unknown},
            )
        self.fake_threshold = validate_confidence(fake_threshold, "fake_threshold")

    def signals(
        self,
        features: FeatureEnvelope,
        metadata: CardMetadata,
        back_features: Optional[FeatureEnvelope] = None,
    ) -> AuthenticitySignals:
        return AuthenticitySignals(
            visual_hash_confidence=round(visual_signal(features), 4),
            text_match_confidence=round(text_signal(metadata), 4),
            holo_pattern_confidence=round(holo_signal(features, metadata.rarity.value), 4),
            border_consistency=round(border_signal(features, back_features), 4),
            font_validation=round(font_signal(features), 4),
        )

    def score(
        self,
        features: FeatureEnvelope,
        metadata: CardMetadata,
        back_features: Optional[FeatureEnvelope] = None,
    ) -> AuthenticityResult:
        signals = self.signals(features, metadata, back_features)
        values = signals.to_dict()

        total_weight = sum(self.weights.values())
        weighted = sum(values[name] * weight for name, weight in self.weights.items())
        score = round(weighted / total_weight, 3)
        fake_detected = score < self.fake_threshold

        return AuthenticityResult(
            authenticity_score=score,
            signals=signals,
            fake_detected=fake_detected,
            rationale=self._rationale(values, score, fake_detected),
        )

    def _rationale(self, values: Dict[str, float], score: float, fake_detected: bool) -> str:
        weakest: List[str] = sorted(values, key=lambda name: values[name])[:2]
        labels = " and ".join(SIGNAL_LABELS[name] for name in weakest)
        verdict = "Likely counterfeit" if fake_detected else "No counterfeit indicators"
        return f"{verdict} (score {score:.3f}); weakest signals: {labels}"

    async def assess(
        self,
        features: FeatureEnvelope,
        metadata: CardMetadata,
        back_features: Optional[FeatureEnvelope] = None,
    ) -> AuthenticityResult:
        ctx = self.log_start("authenticity_scoring", has_back=back_features is not None)
        result = self.score(features, metadata, back_features)
        self.log_success(ctx, score=result.authenticity_score, fake_detected=result.fake_detected)
        return result
