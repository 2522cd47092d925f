"""
Metadata reasoning over OCR output.

The primary path asks the reasoning capability for structured metadata and
returns an explicit outcome value. Any failure on that path selects the
deterministic fallback, which reads the name from the top of the card and
leaves every other field empty.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from ..core.constants import (
    CORRECTION_THRESHOLD,
    FALLBACK_NAME_CONFIDENCE_FACTOR,
    FALLBACK_OVERALL_FACTOR,
    NO_OCR_RATIONALE,
    REASONING_MAX_TOKENS,
    REASONING_TEMPERATURE,
    TOP_REGION_MAX,
)
from ..core.types import (
    CardMetadata,
    Candidate,
    FieldResult,
    MultiCandidateResult,
    MultiCandidateSet,
    OCRBlock,
    OcrContext,
    SingleSet,
)
from ..match import knowledge
from ..utils.log import LoggerMixin
from ..utils.validation import clamp_confidence
from .client import ReasoningClient
from .parser import parse_metadata
from .prompts import build_prompt


@dataclass(frozen=True)
class ReasoningOutcome:
    metadata: Optional[CardMetadata] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, metadata: CardMetadata) -> "ReasoningOutcome":
        return cls(metadata=metadata)

    @classmethod
    def err(cls, error: Exception) -> "ReasoningOutcome":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.metadata is not None


def _empty_field(rationale: str) -> FieldResult:
    return FieldResult(value=None, confidence=0.0, rationale=rationale)


def empty_metadata(rationale: str = NO_OCR_RATIONALE) -> CardMetadata:
    """All-null metadata for images without any OCR text."""
    return CardMetadata(
        name=_empty_field(rationale),
        rarity=_empty_field(rationale),
        card_set=SingleSet(result=_empty_field(rationale)),
        set_symbol=_empty_field(rationale),
        collector_number=_empty_field(rationale),
        copyright_run=_empty_field(rationale),
        illustrator=_empty_field(rationale),
        overall_confidence=0.0,
        reasoning_trail=rationale,
        verified_by_ai=False,
    )


def fallback_metadata(ocr_blocks: List[OCRBlock], reason: str) -> CardMetadata:
    """
    Deterministic metadata used when AI reasoning is unavailable.

    The name is the top-most block in the title band (first one wins ties) at
    0.7 of its OCR confidence; overall confidence is half the name confidence.
    """
    top_blocks = [b for b in ocr_blocks if b.bounding_box.top < TOP_REGION_MAX]
    name_block = min(top_blocks, key=lambda b: b.bounding_box.top) if top_blocks else None

    if name_block is not None and name_block.text.strip():
        name = FieldResult(
            value=name_block.text.strip(),
            confidence=clamp_confidence(name_block.confidence) * FALLBACK_NAME_CONFIDENCE_FACTOR,
            rationale="Fallback: top-most text in the title region, taken without AI reasoning.",
        )
    else:
        name = _empty_field("Fallback: no text found in the title region.")

    def unresolved(label: str) -> FieldResult:
        return _empty_field(f"Fallback: unable to determine {label} without AI reasoning.")

    return CardMetadata(
        name=name,
        rarity=unresolved("rarity"),
        card_set=SingleSet(result=unresolved("set")),
        set_symbol=unresolved("set symbol"),
        collector_number=unresolved("collector number"),
        copyright_run=unresolved("copyright run"),
        illustrator=unresolved("illustrator"),
        overall_confidence=name.confidence * FALLBACK_OVERALL_FACTOR,
        reasoning_trail=(
            f"Fallback mode ({reason}). Name taken from the top-most OCR line; "
            "other fields left empty. Manual review recommended."
        ),
        verified_by_ai=False,
    )


class MetadataReasoner(LoggerMixin):
    """Turns OCR blocks and visual context into ``CardMetadata``."""

    def __init__(
        self,
        client: ReasoningClient,
        timeout_s: float = 30.0,
        max_tokens: int = REASONING_MAX_TOKENS,
        temperature: float = REASONING_TEMPERATURE,
        correction_threshold: float = CORRECTION_THRESHOLD,
    ):
        self.client = client
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.correction_threshold = correction_threshold

    async def reason(self, context: OcrContext) -> CardMetadata:
        if not context.ocr_blocks:
            self.logger.info("No OCR blocks, skipping reasoning")
            return empty_metadata()

        outcome = await self.reason_primary(context)
        if outcome.is_ok:
            return self.post_correct(outcome.metadata)

        self.logger.warning(
            "Primary reasoning failed, using fallback",
            error=str(outcome.error),
            error_type=type(outcome.error).__name__,
        )
        return fallback_metadata(context.ocr_blocks, type(outcome.error).__name__)

    async def reason_primary(self, context: OcrContext) -> ReasoningOutcome:
        ctx = self.log_start("reasoning", blocks=len(context.ocr_blocks))
        prompt = build_prompt(context, self.max_tokens, self.temperature)
        try:
            text = await asyncio.wait_for(self.client.reason(prompt), timeout=self.timeout_s)
            metadata = parse_metadata(text)
        except Exception as e:
            self.log_error(ctx, e)
            return ReasoningOutcome.err(e)

        self.log_success(ctx, overall_confidence=metadata.overall_confidence)
        return ReasoningOutcome.ok(metadata.model_copy(update={"verified_by_ai": True}))

    def post_correct(self, metadata: CardMetadata) -> CardMetadata:
        """Snap the name and set onto known vocabulary; confidences never rise."""
        updates = {}

        name = metadata.name
        if name.value and not knowledge.is_known_species(name.value):
            match = knowledge.correct_species_name(name.value, self.correction_threshold)
            if match is not None:
                updates["name"] = FieldResult(
                    value=match.value,
                    confidence=name.confidence * match.confidence,
                    rationale=f"{name.rationale} Corrected from '{name.value}' ({match.confidence:.2f} match).",
                )

        card_set = metadata.card_set
        if isinstance(card_set, SingleSet) and card_set.result.value:
            corrected = self._correct_set(card_set.result.value)
            if corrected is not None and corrected[0] != card_set.result.value:
                value, score = corrected
                updates["card_set"] = SingleSet(result=FieldResult(
                    value=value,
                    confidence=card_set.result.confidence * score,
                    rationale=f"{card_set.result.rationale} Matched to known set '{value}'.",
                ))
        elif isinstance(card_set, MultiCandidateSet) and card_set.result.candidates:
            candidates = []
            for candidate in card_set.result.candidates:
                corrected = self._correct_set(candidate.value)
                if corrected is None:
                    candidates.append(candidate)
                else:
                    candidates.append(Candidate(
                        value=corrected[0], confidence=candidate.confidence * corrected[1]
                    ))
            updates["card_set"] = MultiCandidateSet(result=MultiCandidateResult(
                candidates=candidates, rationale=card_set.result.rationale
            ))

        number = metadata.collector_number
        if number.value:
            printed = knowledge.extract_collector_number(number.value)
            if printed is not None and printed != number.value:
                updates["collector_number"] = number.model_copy(update={"value": printed})

        copyright_run = metadata.copyright_run
        if copyright_run.value:
            era = knowledge.determine_era(copyright_run.value)
            if era is not None and era not in copyright_run.rationale:
                updates["copyright_run"] = copyright_run.model_copy(
                    update={"rationale": f"{copyright_run.rationale} Printed in the {era}."}
                )

        if not updates:
            return metadata
        self.logger.debug("Metadata post-corrected", fields=sorted(updates))
        return metadata.model_copy(update=updates)

    def _correct_set(self, value: str):
        match = knowledge.resolve_set_name(value, self.correction_threshold)
        if match is None:
            return None
        return match.value, match.confidence
