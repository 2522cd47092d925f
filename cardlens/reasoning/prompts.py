"""Prompt construction for the card metadata reasoning capability."""

from dataclasses import dataclass
from typing import Dict, List

from ..core.constants import (
    BOTTOM_REGION_MIN,
    REASONING_MAX_TOKENS,
    REASONING_TEMPERATURE,
    TOP_REGION_MAX,
)
from ..core.types import OCRBlock, OcrContext


SYSTEM_PROMPT = """You are an expert Pokemon Trading Card Game analyst. You receive noisy OCR \
text read from a photographed card together with visual measurements, and you \
reconstruct the card's identity.

Respond with a single JSON object and nothing else, using exactly these keys:
{
  "name": {"value": string|null, "confidence": number, "rationale": string},
  "rarity": {"value": string|null, "confidence": number, "rationale": string},
  "set": {"value": string|null, "confidence": number, "rationale": string}
         or {"value": string|null, "candidates": [{"value": string, "confidence": number}], "rationale": string},
  "setSymbol": {"value": string|null, "confidence": number, "rationale": string},
  "collectorNumber": {"value": string|null, "confidence": number, "rationale": string},
  "copyrightRun": {"value": string|null, "confidence": number, "rationale": string},
  "illustrator": {"value": string|null, "confidence": number, "rationale": string},
  "overallConfidence": number,
  "reasoningTrail": string
}

Confidence guidelines (all confidences are between 0 and 1):
- 0.9 to 1.0: text is clear and consistent with a known card
- 0.7 to 0.9: minor OCR errors corrected with high certainty
- 0.4 to 0.7: plausible reading with real ambiguity
- below 0.4: guess; prefer null with a low confidence over inventing a value
Use the candidates form for "set" when more than one set is plausible.
Every rationale must be a non-empty sentence explaining the evidence."""


@dataclass
class ReasoningPrompt:
    system: str
    user: str
    max_tokens: int = REASONING_MAX_TOKENS
    temperature: float = REASONING_TEMPERATURE


def group_blocks_by_region(blocks: List[OCRBlock]) -> Dict[str, List[OCRBlock]]:
    """Split OCR blocks into top, middle and bottom bands of the card."""
    regions: Dict[str, List[OCRBlock]] = {"top": [], "middle": [], "bottom": []}
    for block in blocks:
        top = block.bounding_box.top
        if top < TOP_REGION_MAX:
            regions["top"].append(block)
        elif top > BOTTOM_REGION_MIN:
            regions["bottom"].append(block)
        else:
            regions["middle"].append(block)
    return regions


def _format_block(block: OCRBlock, with_position: bool = False) -> str:
    line = f'- "{block.text}" (confidence: {block.confidence * 100:.1f}%'
    if with_position:
        line += f", top: {block.bounding_box.top:.2f}"
    return line + ")"


def build_user_prompt(context: OcrContext) -> str:
    regions = group_blocks_by_region(context.ocr_blocks)
    lines = ["OCR TEXT BY REGION", ""]

    lines.append("Top of card (name, HP, stage):")
    lines.extend(_format_block(b, with_position=True) for b in regions["top"])
    if not regions["top"]:
        lines.append("- (no text)")

    lines.append("")
    lines.append("Middle of card (attacks, abilities, description):")
    lines.extend(_format_block(b) for b in regions["middle"])
    if not regions["middle"]:
        lines.append("- (no text)")

    lines.append("")
    lines.append("Bottom of card (illustrator, collector number, copyright):")
    lines.extend(_format_block(b) for b in regions["bottom"])
    if not regions["bottom"]:
        lines.append("- (no text)")

    visual = context.visual_context
    lines += [
        "",
        "VISUAL CONTEXT",
        f"- Holographic variance: {visual.holo_variance:.3f}",
        f"- Border symmetry: {visual.border_symmetry:.3f}",
        f"- Blur score: {visual.blur_score:.3f}",
        f"- Glare detected: {'yes' if visual.glare_detected else 'no'}",
    ]

    hints = context.card_hints
    if hints and (hints.expected_set or hints.expected_rarity):
        lines += ["", "HINTS FROM THE OWNER"]
        if hints.expected_set:
            lines.append(f"- Expected set: {hints.expected_set}")
        if hints.expected_rarity:
            lines.append(f"- Expected rarity: {hints.expected_rarity}")

    lines += [
        "",
        "TASK",
        "1. Identify the card name, correcting OCR errors against real Pokemon names.",
        "2. Determine rarity, set, set symbol and collector number.",
        "3. Read the copyright run and the illustrator credit if present.",
        "4. Give a confidence and a rationale for every field, then an overall confidence.",
        "Return only the JSON object.",
    ]
    return "\n".join(lines)


def build_prompt(
    context: OcrContext,
    max_tokens: int = REASONING_MAX_TOKENS,
    temperature: float = REASONING_TEMPERATURE,
) -> ReasoningPrompt:
    return ReasoningPrompt(
        system=SYSTEM_PROMPT,
        user=build_user_prompt(context),
        max_tokens=max_tokens,
        temperature=temperature,
    )
