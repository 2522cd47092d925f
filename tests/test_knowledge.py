"""Tests for the card reference data helpers."""

import pytest

from cardlens.match.knowledge import (
    POKEMON_SETS,
    canonical_rarity,
    correct_species_name,
    determine_era,
    extract_collector_number,
    find_set_by_symbol,
    is_holographic_indicator,
    is_known_species,
    resolve_set_name,
)


class TestSetLookup:
    """Test set resolution."""

    def test_exact_name(self):
        match = resolve_set_name("Base Set")

        assert match.value == "Base Set"
        assert match.confidence == 1.0

    def test_symbol_resolves_directly(self):
        assert find_set_by_symbol("SWSH7") == "Evolving Skies"
        match = resolve_set_name("base2")

        assert match.value == "Base Set 2"
        assert match.confidence == 1.0

    def test_alias_reports_canonical_name(self):
        match = resolve_set_name("Rocket")

        assert match.value == "Team Rocket"

    def test_fuzzy_name(self):
        match = resolve_set_name("Evolvng Skies")

        assert match.value == "Evolving Skies"
        assert match.confidence == pytest.approx(1 - 1 / 14)

    def test_unknown_set(self):
        assert resolve_set_name("Completely Made Up Expansion") is None
        assert resolve_set_name("") is None

    def test_symbols_are_unique(self):
        symbols = [info.symbol for info in POKEMON_SETS.values()]

        assert len(symbols) == len(set(symbols))


class TestSpecies:
    """Test species name correction."""

    def test_corrects_typo(self):
        match = correct_species_name("Charizrd")

        assert match.value == "Charizard"

    def test_rejects_distant_text(self):
        assert correct_species_name("Energy Removal") is None

    def test_known_species(self):
        assert is_known_species("mr mime")
        assert not is_known_species("Charizrd")


class TestRarity:
    """Test rarity canonicalization."""

    @pytest.mark.parametrize("text,expected", [
        ("Holo Rare", "Holo Rare"),
        ("uncommon", "Uncommon"),
        ("Rare Holo", "Holo Rare"),
        ("reverse holofoil", "Reverse Holo"),
        ("holo vmax", "Rare Holo VMAX"),
        ("Special Illustration Rare", "Special Illustration Rare"),
    ])
    def test_canonical_rarity(self, text, expected):
        assert canonical_rarity(text) == expected

    def test_unknown_rarity(self):
        assert canonical_rarity("promo") is None
        assert canonical_rarity(None) is None

    @pytest.mark.parametrize("text,expected", [
        ("Holo Rare", True),
        ("Reverse Holo", True),
        ("Rare", False),
        ("", False),
        (None, False),
    ])
    def test_holographic_indicator(self, text, expected):
        assert is_holographic_indicator(text) is expected


class TestPrintedText:
    """Test copyright and collector number parsing."""

    def test_wotc_era(self):
        assert determine_era("©1999 Wizards of the Coast") == "WOTC Era (1999-2003)"

    def test_modern_era(self):
        assert determine_era("©2021 Pokémon / Nintendo / Creatures / GAME FREAK").startswith("Nintendo")
        assert determine_era("©2022 Pokémon ©1995-2022 Nintendo") == "Modern Era (2016+)"

    def test_unknown_era(self):
        assert determine_era("no copyright here") is None

    @pytest.mark.parametrize("text,expected", [
        ("4/102", "4/102"),
        ("No. 25 / 102", "25/102"),
        ("Illus. Ken Sugimori 58/102 ●", "58/102"),
        ("TG05/TG30", "TG05/TG30"),
    ])
    def test_collector_number(self, text, expected):
        assert extract_collector_number(text) == expected

    def test_no_collector_number(self):
        assert extract_collector_number("Fire Spin 100") is None
