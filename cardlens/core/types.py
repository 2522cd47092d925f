from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cardlens.core.constants import DEFAULT_CONDITION, PRICING_WINDOW_DAYS


# --- Reasoned metadata (validated against the reasoning response schema) ---

class FieldResult(BaseModel):
    value: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    rationale: str = Field(min_length=1)


class Candidate(BaseModel):
    value: str
    confidence: float = Field(ge=0.0, le=1.0)


class MultiCandidateResult(BaseModel):
    value: Optional[str] = None
    candidates: List[Candidate] = Field(default_factory=list)
    rationale: str = Field(min_length=1)

    @model_validator(mode="after")
    def order_candidates(self) -> "MultiCandidateResult":
        """Candidates are kept sorted by confidence; value tracks the top one."""
        self.candidates = sorted(self.candidates, key=lambda c: c.confidence, reverse=True)
        if self.candidates:
            self.value = self.candidates[0].value
        return self


class SingleSet(BaseModel):
    kind: Literal["single"] = "single"
    result: FieldResult

    def top_value(self) -> Optional[str]:
        return self.result.value

    def top_confidence(self) -> float:
        return self.result.confidence


class MultiCandidateSet(BaseModel):
    kind: Literal["multi"] = "multi"
    result: MultiCandidateResult

    def top_value(self) -> Optional[str]:
        return self.result.value

    def top_confidence(self) -> float:
        if not self.result.candidates:
            return 0.0
        return self.result.candidates[0].confidence


SetResult = Annotated[Union[SingleSet, MultiCandidateSet], Field(discriminator="kind")]


class CardMetadata(BaseModel):
    """Structured card identity reasoned from OCR text and visual context."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: FieldResult
    rarity: FieldResult
    card_set: SetResult = Field(alias="set")
    set_symbol: FieldResult
    collector_number: FieldResult
    copyright_run: FieldResult
    illustrator: FieldResult
    overall_confidence: float = Field(ge=0.0, le=1.0)
    reasoning_trail: str = ""
    verified_by_ai: bool = False

    @field_validator("card_set", mode="before")
    @classmethod
    def tag_set_variant(cls, v):
        """Reasoning output carries no tag: a candidates list marks the multi form."""
        if isinstance(v, dict) and "kind" not in v:
            if "candidates" in v:
                return {"kind": "multi", "result": v}
            return {"kind": "single", "result": v}
        return v

    def field_confidences(self) -> Dict[str, float]:
        return {
            "name": self.name.confidence,
            "rarity": self.rarity.confidence,
            "set": self.card_set.top_confidence(),
            "set_symbol": self.set_symbol.confidence,
            "collector_number": self.collector_number.confidence,
            "copyright_run": self.copyright_run.confidence,
            "illustrator": self.illustrator.confidence,
        }


# --- Feature extraction ---

@dataclass
class BoundingBox:
    top: float
    left: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class OCRBlock:
    text: str
    confidence: float
    bounding_box: BoundingBox
    type: str = "LINE"


@dataclass
class BorderMetrics:
    symmetry_score: float


@dataclass
class ImageQuality:
    blur_score: float
    glare_detected: bool = False


@dataclass
class FontMetrics:
    kerning_variance: float
    alignment_variance: float
    font_size_variance: float


@dataclass
class FeatureEnvelope:
    ocr: List[OCRBlock]
    holo_variance: float
    borders: BorderMetrics
    quality: ImageQuality
    font_metrics: Optional[FontMetrics] = None
    image_meta: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureEnvelope":
        blocks = [
            OCRBlock(
                text=str(b.get("text", "")),
                confidence=float(b.get("confidence", 0.0)),
                bounding_box=BoundingBox(**(b.get("bounding_box") or {"top": 1.0})),
                type=b.get("type", "LINE"),
            )
            for b in data.get("ocr") or []
        ]
        fonts = data.get("font_metrics")
        return cls(
            ocr=blocks,
            holo_variance=float(data.get("holo_variance", 0.0)),
            borders=BorderMetrics(**data["borders"]),
            quality=ImageQuality(**data["quality"]),
            font_metrics=FontMetrics(**fonts) if fonts else None,
            image_meta=data.get("image_meta"),
        )


@dataclass
class CardHints:
    expected_set: Optional[str] = None
    expected_rarity: Optional[str] = None


@dataclass
class VisualContext:
    holo_variance: float
    border_symmetry: float
    blur_score: float
    glare_detected: bool


@dataclass
class OcrContext:
    ocr_blocks: List[OCRBlock]
    visual_context: VisualContext
    card_hints: Optional[CardHints] = None

    @classmethod
    def from_features(cls, features: FeatureEnvelope, hints: Optional[CardHints] = None) -> "OcrContext":
        return cls(
            ocr_blocks=list(features.ocr),
            visual_context=VisualContext(
                holo_variance=features.holo_variance,
                border_symmetry=features.borders.symmetry_score,
                blur_score=features.quality.blur_score,
                glare_detected=features.quality.glare_detected,
            ),
            card_hints=hints,
        )


# --- Pricing ---

@dataclass(frozen=True)
class RawPriceObservation:
    source: str
    price: float
    currency: str
    normalized_price: float
    observed_at: Optional[datetime]
    condition: str = DEFAULT_CONDITION
    listing_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["observed_at"] = self.observed_at.isoformat() if self.observed_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawPriceObservation":
        observed_at = data.get("observed_at")
        return cls(
            source=data["source"],
            price=float(data["price"]),
            currency=data["currency"],
            normalized_price=float(data["normalized_price"]),
            observed_at=datetime.fromisoformat(observed_at) if observed_at else None,
            condition=data.get("condition", DEFAULT_CONDITION),
            listing_url=data.get("listing_url"),
        )


@dataclass
class PriceQuery:
    card_name: str
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    condition: str = DEFAULT_CONDITION
    window_days: int = PRICING_WINDOW_DAYS


@dataclass
class ValuationSummary:
    """Fair value and direction of recent sales for one priced card."""
    fair_value: float
    trend: str
    confidence: float
    summary: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValuationSummary":
        return cls(**data)


@dataclass
class PricingResult:
    value_low: float
    value_median: float
    value_high: float
    comps_count: int
    sources: List[str]
    confidence: float
    message: Optional[str] = None
    valuation: Optional[ValuationSummary] = None

    @classmethod
    def empty(cls, message: str) -> "PricingResult":
        return cls(0.0, 0.0, 0.0, 0, [], 0.0, message)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingResult":
        data = dict(data)
        valuation = data.pop("valuation", None)
        return cls(**data, valuation=ValuationSummary.from_dict(valuation) if valuation else None)


# --- Authenticity ---

@dataclass
class AuthenticitySignals:
    visual_hash_confidence: float
    text_match_confidence: float
    holo_pattern_confidence: float
    border_consistency: float
    font_validation: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class AuthenticityResult:
    authenticity_score: float
    signals: AuthenticitySignals
    fake_detected: bool
    rationale: str


# --- Persistence ---

@dataclass
class ImageRefs:
    front: str
    back: Optional[str] = None


@dataclass
class Card:
    owner_id: str
    card_id: str
    front_image_ref: Optional[str] = None
    back_image_ref: Optional[str] = None
    name: Optional[str] = None
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    id_confidence: Optional[float] = None
    value_low: Optional[float] = None
    value_median: Optional[float] = None
    value_high: Optional[float] = None
    comps_count: Optional[int] = None
    sources: List[str] = field(default_factory=list)
    pricing_message: Optional[str] = None
    pricing_confidence: Optional[float] = None
    valuation: Optional[ValuationSummary] = None
    authenticity_score: Optional[float] = None
    authenticity_signals: Optional[AuthenticitySignals] = None
    fake_detected: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None


@dataclass
class CardUpdate:
    """Everything a completed analysis writes to a card, applied in one statement."""
    name: Optional[str]
    set_name: Optional[str]
    number: Optional[str]
    rarity: Optional[str]
    id_confidence: float
    value_low: float
    value_median: float
    value_high: float
    comps_count: int
    sources: List[str]
    pricing_message: Optional[str]
    pricing_confidence: float
    authenticity_score: float
    authenticity_signals: AuthenticitySignals
    fake_detected: bool
    front_image_ref: Optional[str] = None
    back_image_ref: Optional[str] = None
    valuation: Optional[ValuationSummary] = None


# --- Runs ---

class PipelineState(str, Enum):
    INIT = "INIT"
    EXTRACTING = "EXTRACTING"
    REASONING = "REASONING"
    FANNED_OUT = "FANNED_OUT"
    AGGREGATING = "AGGREGATING"
    DONE = "DONE"
    FAILED = "FAILED"
    REJECTED = "REJECTED"


@dataclass
class RunRequest:
    owner_id: str
    card_id: str
    image_refs: ImageRefs
    known_hints: Optional[CardHints] = None
    reanalysis: bool = False


@dataclass
class RunOutcome:
    run_id: str
    card_id: str
    state: PipelineState
    card: Optional[Card] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    transitions: List[PipelineState] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return self.state is PipelineState.REJECTED

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE
