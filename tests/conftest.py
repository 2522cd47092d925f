"""Pytest configuration and shared fixtures for CardLens tests."""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from cardlens.core.types import (
    CardMetadata,
    FeatureEnvelope,
    FieldResult,
    PriceQuery,
    RawPriceObservation,
    SingleSet,
)
from cardlens.pricing.sources import currency_rates, make_observation
from cardlens.store.cache import TTLCache
from cardlens.store.cards import CardStore
from cardlens.store.images import LocalImageStore


FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeReasoningClient:
    """Returns canned responses (or raises canned errors) in order."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.prompts = []

    async def reason(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return response


class FakeExtractor:
    """Maps image refs to envelopes or to errors raised on each call."""

    def __init__(self, results: Dict[str, Any]):
        self.results = results
        self.calls: List[str] = []

    async def extract_features(self, image_ref: str) -> FeatureEnvelope:
        self.calls.append(image_ref)
        result = self.results[image_ref]
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakePriceSource:
    """Price source that counts calls and serves fixed observations."""

    def __init__(self, name: str, observations: Optional[List[RawPriceObservation]] = None,
                 error: Optional[Exception] = None):
        self.name = name
        self.observations = observations or []
        self.error = error
        self.calls: List[PriceQuery] = []

    async def search(self, query: PriceQuery) -> List[RawPriceObservation]:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return list(self.observations)


class RecordingSink:
    def __init__(self, error: Optional[Exception] = None):
        self.events = []
        self.error = error

    def emit(self, event) -> None:
        if self.error is not None:
            raise self.error
        self.events.append(event)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def temp_dirs(tmp_path):
    """Create temporary directories for each test function."""
    data_dir = tmp_path / "data"
    image_dir = data_dir / "images"
    image_dir.mkdir(parents=True)
    return {
        "temp_dir": tmp_path,
        "data_dir": data_dir,
        "image_dir": image_dir,
    }


@pytest.fixture
def card_store(temp_dirs):
    return CardStore(temp_dirs["data_dir"] / "cards.db")


@pytest.fixture
def ttl_cache(temp_dirs, fake_clock):
    return TTLCache(temp_dirs["data_dir"] / "cache.db", clock=fake_clock)


@pytest.fixture
def image_store(temp_dirs):
    return LocalImageStore(temp_dirs["image_dir"])


@pytest.fixture
def rates():
    return currency_rates(1.1)


@pytest.fixture
def sample_features_dict() -> Dict[str, Any]:
    """Feature payload for a clean holo Charizard scan."""
    return {
        "ocr": [
            {"text": "Charizard", "confidence": 0.95,
             "bounding_box": {"top": 0.05, "left": 0.1, "width": 0.4, "height": 0.05}},
            {"text": "120 HP", "confidence": 0.9,
             "bounding_box": {"top": 0.06, "left": 0.7, "width": 0.2, "height": 0.04}},
            {"text": "Fire Spin", "confidence": 0.88,
             "bounding_box": {"top": 0.5, "left": 0.1, "width": 0.3, "height": 0.04}},
            {"text": "4/102", "confidence": 0.92,
             "bounding_box": {"top": 0.93, "left": 0.8, "width": 0.1, "height": 0.03}},
        ],
        "holo_variance": 0.8,
        "borders": {"symmetry_score": 0.9},
        "quality": {"blur_score": 0.9, "glare_detected": False},
        "font_metrics": {"kerning_variance": 0.1, "alignment_variance": 0.1, "font_size_variance": 0.1},
    }


@pytest.fixture
def sample_features(sample_features_dict) -> FeatureEnvelope:
    return FeatureEnvelope.from_dict(copy.deepcopy(sample_features_dict))


def field(value: Optional[str], confidence: float, rationale: str = "Read from the card.") -> FieldResult:
    return FieldResult(value=value, confidence=confidence, rationale=rationale)


def make_metadata(
    name: Optional[str] = "Charizard",
    rarity: Optional[str] = "Holo Rare",
    set_name: Optional[str] = "Base Set",
    number: Optional[str] = "4/102",
    overall: float = 0.9,
    verified: bool = True,
) -> CardMetadata:
    return CardMetadata(
        name=field(name, 0.95),
        rarity=field(rarity, 0.85),
        card_set=SingleSet(result=field(set_name, 0.8)),
        set_symbol=field(None, 0.0, "No symbol visible."),
        collector_number=field(number, 0.9),
        copyright_run=field("1999-2000", 0.7),
        illustrator=field("Mitsuhiro Arita", 0.6),
        overall_confidence=overall,
        reasoning_trail="Name from the top line, number from the bottom right.",
        verified_by_ai=verified,
    )


@pytest.fixture
def sample_metadata() -> CardMetadata:
    return make_metadata()


@pytest.fixture
def sample_metadata_json() -> Dict[str, Any]:
    """Reasoning response body in its camelCase wire form."""
    return {
        "name": {"value": "Charizard", "confidence": 0.95, "rationale": "Top line, largest font."},
        "rarity": {"value": "Holo Rare", "confidence": 0.85, "rationale": "Holo pattern plus star symbol."},
        "set": {
            "value": "Base Set",
            "candidates": [
                {"value": "Base Set 2", "confidence": 0.3},
                {"value": "Base Set", "confidence": 0.7},
            ],
            "rationale": "Copyright 1999 with no set symbol.",
        },
        "setSymbol": {"value": None, "confidence": 0.0, "rationale": "No symbol visible."},
        "collectorNumber": {"value": "4/102", "confidence": 0.92, "rationale": "Bottom right."},
        "copyrightRun": {"value": "1999-2000", "confidence": 0.8, "rationale": "Copyright line."},
        "illustrator": {"value": "Mitsuhiro Arita", "confidence": 0.75, "rationale": "Illus. line."},
        "overallConfidence": 0.88,
        "reasoningTrail": "Name and number read directly; set inferred from copyright.",
    }


def observation(source: str, price: float, currency: str = "USD",
                observed_at: Optional[datetime] = FIXED_NOW, rates=None,
                listing_url: Optional[str] = None) -> RawPriceObservation:
    return make_observation(source, price, currency, rates or currency_rates(1.1), observed_at,
                            listing_url=listing_url)


def put_image(store: LocalImageStore, ref: str, data: bytes):
    path = store.path_for(ref)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


# Whole runs against temporary stores, files and event sinks
INTEGRATION_MODULES = {"test_cli", "test_orchestrator"}


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: whole-pipeline runs against temporary stores")
    config.addinivalue_line("markers", "unit: isolated component tests")


def pytest_collection_modifyitems(config, items):
    """Mark each test unit or integration by the module it lives in."""
    for item in items:
        if item.module.__name__.rsplit(".", 1)[-1] in INTEGRATION_MODULES:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
