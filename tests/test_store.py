"""Tests for the storage layer: TTL cache, card store and image store."""

from datetime import timedelta

import pytest

from cardlens.core.types import AuthenticitySignals, CardUpdate, ValuationSummary
from cardlens.store.cache import TTLCache
from cardlens.store.cards import CardStore
from cardlens.utils.error_handler import (
    CacheError,
    ConcurrencyConflict,
    InvalidInputError,
    NotFoundError,
)

from conftest import FIXED_NOW, put_image


def make_update(**overrides) -> CardUpdate:
    values = dict(
        name="Charizard",
        set_name="Base Set",
        number="4/102",
        rarity="Holo Rare",
        id_confidence=0.9,
        value_low=200.0,
        value_median=350.0,
        value_high=500.0,
        comps_count=12,
        sources=["pokemontcg"],
        pricing_message=None,
        pricing_confidence=0.6,
        authenticity_score=0.87,
        authenticity_signals=AuthenticitySignals(0.9, 0.92, 0.6, 0.9, 0.9),
        fake_detected=False,
    )
    values.update(overrides)
    return CardUpdate(**values)


class TestTTLCache:
    """Test the SQLite TTL cache."""

    def test_set_and_get(self, ttl_cache):
        ttl_cache.set("price:charizard", {"median": 350.0}, ttl_s=60)

        assert ttl_cache.get("price:charizard") == {"median": 350.0}

    def test_missing_key(self, ttl_cache):
        assert ttl_cache.get("nope") is None

    def test_entry_expires(self, ttl_cache, fake_clock):
        ttl_cache.set("k", [1, 2, 3], ttl_s=60)

        fake_clock.advance(59)
        assert ttl_cache.get("k") == [1, 2, 3]

        fake_clock.advance(1)
        assert ttl_cache.get("k") is None

    def test_last_write_wins(self, ttl_cache):
        ttl_cache.set("k", "first", ttl_s=60)
        ttl_cache.set("k", "second", ttl_s=60)

        assert ttl_cache.get("k") == "second"

    def test_empty_list_is_a_hit(self, ttl_cache):
        ttl_cache.set("k", [], ttl_s=60)

        assert ttl_cache.get("k") == []

    def test_delete(self, ttl_cache):
        ttl_cache.set("k", 1, ttl_s=60)
        ttl_cache.delete("k")

        assert ttl_cache.get("k") is None

    def test_purge_expired(self, ttl_cache, fake_clock):
        ttl_cache.set("short", 1, ttl_s=10)
        ttl_cache.set("long", 2, ttl_s=1000)
        fake_clock.advance(100)

        assert ttl_cache.purge_expired() == 1
        assert ttl_cache.get("long") == 2

    def test_unserializable_value_raises(self, ttl_cache):
        with pytest.raises(CacheError):
            ttl_cache.set("k", object(), ttl_s=60)

    def test_persists_across_instances(self, temp_dirs, fake_clock):
        path = temp_dirs["data_dir"] / "shared.db"
        TTLCache(path, clock=fake_clock).set("k", "v", ttl_s=60)

        assert TTLCache(path, clock=fake_clock).get("k") == "v"


class TestCardStore:
    """Test card persistence."""

    def test_create_and_get(self, card_store):
        created = card_store.create_card("user-1", "card-1", "user-1/front.jpg", "user-1/back.jpg")

        assert created.front_image_ref == "user-1/front.jpg"
        assert created.back_image_ref == "user-1/back.jpg"
        assert created.sources == []
        assert created.name is None
        assert created.created_at == created.updated_at

    def test_duplicate_create_conflicts(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg")

        with pytest.raises(ConcurrencyConflict):
            card_store.create_card("user-1", "card-1", "front.jpg")

    def test_reads_are_owner_scoped(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg")

        with pytest.raises(NotFoundError):
            card_store.get_card("user-2", "card-1")

    def test_upsert_creates_missing_card(self, card_store):
        card = card_store.upsert_results("user-1", "card-9", make_update(front_image_ref="f.jpg"))

        assert card.name == "Charizard"
        assert card.front_image_ref == "f.jpg"
        assert card.authenticity_signals.text_match_confidence == 0.92
        assert card.fake_detected is False
        assert card.sources == ["pokemontcg"]

    def test_upsert_keeps_existing_refs(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg", "back.jpg")

        card = card_store.upsert_results("user-1", "card-1", make_update())

        assert card.front_image_ref == "front.jpg"
        assert card.back_image_ref == "back.jpg"
        assert card.value_median == 350.0

    def test_upsert_overwrites_previous_results(self, card_store):
        card_store.upsert_results("user-1", "card-1", make_update())

        card = card_store.upsert_results("user-1", "card-1", make_update(value_median=400.0, fake_detected=True))

        assert card.value_median == 400.0
        assert card.fake_detected is True

    def test_valuation_round_trip(self, card_store):
        valuation = ValuationSummary(350.0, "rising", 0.6, "Fair value $350.00", "Hold")

        card_store.upsert_results("user-1", "card-1", make_update(valuation=valuation))
        card = card_store.update_results("user-1", "card-1", make_update(valuation=valuation))

        assert card_store.get_card("user-1", "card-1").valuation == valuation
        assert card.valuation.trend == "rising"

    def test_missing_valuation_reads_as_none(self, card_store):
        card = card_store.upsert_results("user-1", "card-1", make_update())

        assert card.valuation is None

    def test_update_requires_live_card(self, card_store):
        with pytest.raises(NotFoundError):
            card_store.update_results("user-1", "missing", make_update())

        card_store.create_card("user-1", "card-1", "front.jpg")
        card_store.soft_delete("user-1", "card-1")

        with pytest.raises(NotFoundError):
            card_store.update_results("user-1", "card-1", make_update())

    def test_update_existing_card(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg")

        card = card_store.update_results("user-1", "card-1", make_update(rarity="Rare"))

        assert card.rarity == "Rare"
        assert card.front_image_ref == "front.jpg"

    def test_update_races_with_delete(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg")
        original_get = card_store.get_card

        def get_then_delete(owner_id, card_id, include_deleted=False):
            card = original_get(owner_id, card_id, include_deleted)
            card_store.soft_delete(owner_id, card_id)
            return card

        card_store.get_card = get_then_delete

        with pytest.raises(ConcurrencyConflict):
            card_store.update_results("user-1", "card-1", make_update())

    def test_soft_delete_hides_card(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg")
        card_store.soft_delete("user-1", "card-1")

        with pytest.raises(NotFoundError):
            card_store.get_card("user-1", "card-1")
        assert card_store.get_card("user-1", "card-1", include_deleted=True).deleted_at is not None
        assert card_store.list_cards("user-1") == []

    def test_hard_delete(self, card_store):
        card_store.create_card("user-1", "card-1", "front.jpg")

        removed = card_store.hard_delete("user-1", "card-1")

        assert removed.card_id == "card-1"
        assert card_store.hard_delete("user-1", "card-1") is None
        with pytest.raises(NotFoundError):
            card_store.get_card("user-1", "card-1", include_deleted=True)

    def test_list_cards_limit_and_owner(self, card_store):
        for index in range(3):
            card_store.create_card("user-1", f"card-{index}", "front.jpg")
        card_store.create_card("user-2", "other", "front.jpg")

        assert len(card_store.list_cards("user-1")) == 3
        assert len(card_store.list_cards("user-1", limit=2)) == 2
        assert [c.card_id for c in card_store.list_cards("user-2")] == ["other"]


class TestRunClaims:
    """Test cross-process run claims."""

    def test_claim_is_exclusive(self, card_store):
        assert card_store.claim_run("card-1", "run-a", "user-1") is True
        assert card_store.claim_run("card-1", "run-b", "user-1") is False

    def test_release_frees_claim(self, card_store):
        card_store.claim_run("card-1", "run-a", "user-1")
        card_store.release_run("card-1", "run-a")

        assert card_store.claim_run("card-1", "run-b", "user-1") is True

    def test_release_by_other_run_is_ignored(self, card_store):
        card_store.claim_run("card-1", "run-a", "user-1")
        card_store.release_run("card-1", "run-b")

        assert card_store.claim_run("card-1", "run-c", "user-1") is False

    def test_abandoned_claim_is_taken_over(self, temp_dirs):
        db_path = temp_dirs["data_dir"] / "cards.db"
        crashed = CardStore(db_path, claim_ttl_s=60, now=lambda: FIXED_NOW)
        crashed.claim_run("card-1", "old-run", "user-1")

        soon = CardStore(db_path, claim_ttl_s=60, now=lambda: FIXED_NOW + timedelta(seconds=30))
        later = CardStore(db_path, claim_ttl_s=60, now=lambda: FIXED_NOW + timedelta(seconds=61))

        assert soon.claim_run("card-1", "new-run", "user-1") is False
        assert later.claim_run("card-1", "new-run", "user-1") is True
        assert later.claim_run("card-1", "third-run", "user-1") is False

    def test_late_release_keeps_new_claim(self, temp_dirs):
        db_path = temp_dirs["data_dir"] / "cards.db"
        CardStore(db_path, claim_ttl_s=60, now=lambda: FIXED_NOW).claim_run("card-1", "old-run", "user-1")
        store = CardStore(db_path, claim_ttl_s=60, now=lambda: FIXED_NOW + timedelta(minutes=5))
        store.claim_run("card-1", "new-run", "user-1")

        store.release_run("card-1", "old-run")

        assert store.claim_run("card-1", "other-run", "user-1") is False


class TestLocalImageStore:
    """Test local image storage."""

    def test_delete_existing_image(self, image_store):
        path = put_image(image_store, "user-1/front.jpg", b"jpeg-bytes")

        assert image_store.path_for("user-1/front.jpg") == path
        assert image_store.delete("user-1/front.jpg") is True
        assert not path.exists()

    def test_delete_missing_image(self, image_store):
        assert image_store.delete("user-1/missing.jpg") is False

    def test_rejects_escaping_refs(self, image_store):
        with pytest.raises(InvalidInputError):
            image_store.path_for("../outside.jpg")
