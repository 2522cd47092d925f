"""
Pokemon TCG reference data: sets, rarities, copyright eras and numbering.

Used to post-correct reasoned metadata and to judge whether OCR text reads
like a genuine card.
"""

import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from .fuzzy import FuzzyMatch, best_match, normalize
from ..core.constants import CORRECTION_THRESHOLD


class SetInfo(NamedTuple):
    symbol: str
    years: Tuple[int, ...]
    aliases: Tuple[str, ...] = ()


POKEMON_SETS: Dict[str, SetInfo] = {
    # Wizards of the Coast
    "Base Set": SetInfo("base", (1999,), ("Base", "Original Base Set")),
    "Base Set 2": SetInfo("base2", (2000,), ("Base 2",)),
    "Jungle": SetInfo("jungle", (1999,)),
    "Fossil": SetInfo("fossil", (1999,)),
    "Team Rocket": SetInfo("teamrocket", (2000,), ("Rocket",)),
    "Gym Heroes": SetInfo("gymheroes", (2000,)),
    "Gym Challenge": SetInfo("gymchallenge", (2000,)),
    "Neo Genesis": SetInfo("neogenesis", (2000,)),
    "Neo Discovery": SetInfo("neodiscovery", (2001,)),
    "Neo Revelation": SetInfo("neorevelation", (2001,)),
    "Neo Destiny": SetInfo("neodestiny", (2002,)),
    "Legendary Collection": SetInfo("legendary", (2002,)),
    "Expedition Base Set": SetInfo("expedition", (2002,), ("Expedition",)),
    "Aquapolis": SetInfo("aquapolis", (2003,)),
    "Skyridge": SetInfo("skyridge", (2003,)),
    # EX
    "EX Ruby & Sapphire": SetInfo("ex1", (2003,), ("Ruby Sapphire",)),
    "EX Sandstorm": SetInfo("ex2", (2003,)),
    "EX Dragon": SetInfo("ex3", (2003,)),
    "EX Team Magma vs Team Aqua": SetInfo("ex4", (2004,), ("Magma vs Aqua",)),
    "EX Hidden Legends": SetInfo("ex5", (2004,)),
    "EX FireRed & LeafGreen": SetInfo("ex6", (2004,), ("FireRed LeafGreen", "FRLG")),
    "EX Team Rocket Returns": SetInfo("ex7", (2004,), ("Rocket Returns",)),
    "EX Deoxys": SetInfo("ex8", (2005,)),
    "EX Emerald": SetInfo("ex9", (2005,)),
    "EX Unseen Forces": SetInfo("ex10", (2005,)),
    "EX Delta Species": SetInfo("ex11", (2005,)),
    "EX Legend Maker": SetInfo("ex12", (2006,)),
    "EX Holon Phantoms": SetInfo("ex13", (2006,)),
    "EX Crystal Guardians": SetInfo("ex14", (2006,)),
    "EX Dragon Frontiers": SetInfo("ex15", (2006,)),
    "EX Power Keepers": SetInfo("ex16", (2007,)),
    # Diamond & Pearl, Platinum, HeartGold & SoulSilver
    "Diamond & Pearl": SetInfo("dp1", (2007,), ("DP Base",)),
    "Mysterious Treasures": SetInfo("dp2", (2007,)),
    "Secret Wonders": SetInfo("dp3", (2007,)),
    "Great Encounters": SetInfo("dp4", (2008,)),
    "Majestic Dawn": SetInfo("dp5", (2008,)),
    "Legends Awakened": SetInfo("dp6", (2008,)),
    "Stormfront": SetInfo("dp7", (2008,)),
    "Platinum": SetInfo("pl1", (2009,)),
    "Rising Rivals": SetInfo("pl2", (2009,)),
    "Supreme Victors": SetInfo("pl3", (2009,)),
    "Arceus": SetInfo("pl4", (2009,)),
    "HeartGold & SoulSilver": SetInfo("hgss1", (2010,), ("HGSS Base",)),
    "Unleashed": SetInfo("hgss2", (2010,)),
    "Undaunted": SetInfo("hgss3", (2010,)),
    "Triumphant": SetInfo("hgss4", (2010,)),
    "Call of Legends": SetInfo("col", (2011,)),
    # Black & White
    "Black & White": SetInfo("bw1", (2011,), ("BW Base",)),
    "Emerging Powers": SetInfo("bw2", (2011,)),
    "Noble Victories": SetInfo("bw3", (2011,)),
    "Next Destinies": SetInfo("bw4", (2012,)),
    "Dark Explorers": SetInfo("bw5", (2012,)),
    "Dragons Exalted": SetInfo("bw6", (2012,)),
    "Boundaries Crossed": SetInfo("bw7", (2012,)),
    "Plasma Storm": SetInfo("bw8", (2013,)),
    "Plasma Freeze": SetInfo("bw9", (2013,)),
    "Plasma Blast": SetInfo("bw10", (2013,)),
    "Legendary Treasures": SetInfo("bw11", (2013,)),
    # XY
    "XY": SetInfo("xy1", (2014,), ("XY Base",)),
    "Flashfire": SetInfo("xy2", (2014,)),
    "Furious Fists": SetInfo("xy3", (2014,)),
    "Phantom Forces": SetInfo("xy4", (2014,)),
    "Primal Clash": SetInfo("xy5", (2015,)),
    "Roaring Skies": SetInfo("xy6", (2015,)),
    "Ancient Origins": SetInfo("xy7", (2015,)),
    "BREAKthrough": SetInfo("xy8", (2015,)),
    "BREAKpoint": SetInfo("xy9", (2016,)),
    "Fates Collide": SetInfo("xy10", (2016,)),
    "Steam Siege": SetInfo("xy11", (2016,)),
    "Evolutions": SetInfo("xy12", (2016,)),
    # Sun & Moon
    "Sun & Moon": SetInfo("sm1", (2017,), ("SM Base",)),
    "Guardians Rising": SetInfo("sm2", (2017,)),
    "Burning Shadows": SetInfo("sm3", (2017,)),
    "Crimson Invasion": SetInfo("sm4", (2017,)),
    "Ultra Prism": SetInfo("sm5", (2018,)),
    "Forbidden Light": SetInfo("sm6", (2018,)),
    "Celestial Storm": SetInfo("sm7", (2018,)),
    "Lost Thunder": SetInfo("sm8", (2018,)),
    "Team Up": SetInfo("sm9", (2019,)),
    "Unbroken Bonds": SetInfo("sm10", (2019,)),
    "Unified Minds": SetInfo("sm11", (2019,)),
    "Cosmic Eclipse": SetInfo("sm12", (2019,)),
    # Sword & Shield
    "Sword & Shield": SetInfo("swsh1", (2020,), ("SWSH Base",)),
    "Rebel Clash": SetInfo("swsh2", (2020,)),
    "Darkness Ablaze": SetInfo("swsh3", (2020,)),
    "Vivid Voltage": SetInfo("swsh4", (2020,)),
    "Shining Fates": SetInfo("swsh45", (2021,)),
    "Battle Styles": SetInfo("swsh5", (2021,)),
    "Chilling Reign": SetInfo("swsh6", (2021,)),
    "Evolving Skies": SetInfo("swsh7", (2021,)),
    "Fusion Strike": SetInfo("swsh8", (2021,)),
    "Brilliant Stars": SetInfo("swsh9", (2022,)),
    "Astral Radiance": SetInfo("swsh10", (2022,)),
    "Lost Origin": SetInfo("swsh11", (2022,)),
    "Silver Tempest": SetInfo("swsh12", (2022,)),
    "Crown Zenith": SetInfo("swsh125", (2023,)),
    # Scarlet & Violet
    "Scarlet & Violet": SetInfo("sv1", (2023,), ("SV Base",)),
    "Paldea Evolved": SetInfo("sv2", (2023,)),
    "Obsidian Flames": SetInfo("sv3", (2023,)),
    "151": SetInfo("sv35", (2023,), ("Pokemon 151", "One Fifty One")),
    "Paradox Rift": SetInfo("sv4", (2023,)),
    "Paldean Fates": SetInfo("sv45", (2024,)),
    "Temporal Forces": SetInfo("sv5", (2024,)),
    "Twilight Masquerade": SetInfo("sv6", (2024,)),
    "Shrouded Fable": SetInfo("sv65", (2024,)),
    "Stellar Crown": SetInfo("sv7", (2024,)),
    "Surging Sparks": SetInfo("sv8", (2024,)),
    "Prismatic Evolutions": SetInfo("sv85", (2025,)),
}

RARITY_PATTERNS: Dict[str, List[str]] = {
    "Common": ["common", "●", "circle"],
    "Uncommon": ["uncommon", "◆", "diamond"],
    "Rare": ["rare", "★", "star"],
    "Holo Rare": ["holo rare", "holographic", "holo", "shiny"],
    "Reverse Holo": ["reverse holo", "reverse holographic"],
    "Ultra Rare": ["ultra rare"],
    "Secret Rare": ["secret rare"],
    "Rare Holo EX": ["holo ex"],
    "Rare Holo GX": ["holo gx"],
    "Rare Holo V": ["holo v"],
    "Rare Holo VMAX": ["vmax", "holo vmax"],
    "Rare Holo VSTAR": ["vstar", "holo vstar"],
    "Amazing Rare": ["amazing rare", "amazing"],
    "Radiant Rare": ["radiant rare", "radiant"],
    "Illustration Rare": ["illustration rare"],
    "Special Illustration Rare": ["special illustration rare"],
    "Hyper Rare": ["hyper rare"],
}

COPYRIGHT_PATTERNS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("WOTC Era (1999-2003)", re.compile(r"©\s*199[5-9].*Wizards", re.IGNORECASE)),
    ("WOTC Era (1999-2003)", re.compile(r"©.*Wizards.*199[5-9]", re.IGNORECASE)),
    ("Nintendo Era (2003-2016)", re.compile(r"©.*Nintendo.*Creatures.*GAME\s?FREAK", re.IGNORECASE)),
    ("Modern Era (2016+)", re.compile(r"©.*Pok[eé]mon.*©.*Nintendo", re.IGNORECASE)),
    ("Modern Era (2016+)", re.compile(r"©.*Nintendo.*©.*Creatures", re.IGNORECASE)),
    ("TPCi Era", re.compile(r"©.*The Pok[eé]mon Company International", re.IGNORECASE)),
]

COLLECTOR_NUMBER_PATTERNS: List["re.Pattern[str]"] = [
    re.compile(r"\bNo\.\s*(\d{1,3})\s*/\s*(\d{1,3})\b", re.IGNORECASE),
    re.compile(r"\b([A-Z]{0,3}\d{1,3})\s*/\s*([A-Z]{0,3}\d{1,3})\b"),
]

HOLO_KEYWORDS = ("holo", "holographic", "shiny", "foil", "reverse")

# Frequently collected species, used to correct OCR noise in card names
POKEMON_SPECIES: List[str] = [
    "Bulbasaur", "Ivysaur", "Venusaur", "Charmander", "Charmeleon", "Charizard",
    "Squirtle", "Wartortle", "Blastoise", "Caterpie", "Metapod", "Butterfree",
    "Pidgey", "Pidgeotto", "Pidgeot", "Rattata", "Raticate", "Ekans", "Arbok",
    "Pikachu", "Raichu", "Sandshrew", "Sandslash", "Nidoking", "Nidoqueen",
    "Clefairy", "Clefable", "Vulpix", "Ninetales", "Jigglypuff", "Wigglytuff",
    "Zubat", "Golbat", "Oddish", "Gloom", "Vileplume", "Diglett", "Dugtrio",
    "Meowth", "Persian", "Psyduck", "Golduck", "Mankey", "Primeape", "Growlithe",
    "Arcanine", "Poliwag", "Poliwhirl", "Poliwrath", "Abra", "Kadabra", "Alakazam",
    "Machop", "Machoke", "Machamp", "Bellsprout", "Tentacool", "Tentacruel",
    "Geodude", "Graveler", "Golem", "Ponyta", "Rapidash", "Slowpoke", "Slowbro",
    "Magnemite", "Magneton", "Farfetch'd", "Doduo", "Dodrio", "Seel", "Dewgong",
    "Grimer", "Muk", "Shellder", "Cloyster", "Gastly", "Haunter", "Gengar",
    "Onix", "Drowzee", "Hypno", "Krabby", "Kingler", "Voltorb", "Electrode",
    "Exeggcute", "Exeggutor", "Cubone", "Marowak", "Hitmonlee", "Hitmonchan",
    "Lickitung", "Koffing", "Weezing", "Rhyhorn", "Rhydon", "Chansey", "Tangela",
    "Kangaskhan", "Horsea", "Seadra", "Goldeen", "Seaking", "Staryu", "Starmie",
    "Mr. Mime", "Scyther", "Jynx", "Electabuzz", "Magmar", "Pinsir", "Tauros",
    "Magikarp", "Gyarados", "Lapras", "Ditto", "Eevee", "Vaporeon", "Jolteon",
    "Flareon", "Porygon", "Omanyte", "Omastar", "Kabuto", "Kabutops", "Aerodactyl",
    "Snorlax", "Articuno", "Zapdos", "Moltres", "Dratini", "Dragonair", "Dragonite",
    "Mewtwo", "Mew", "Chikorita", "Cyndaquil", "Totodile", "Togepi", "Ampharos",
    "Espeon", "Umbreon", "Scizor", "Heracross", "Tyranitar", "Lugia", "Ho-Oh",
    "Celebi", "Blaziken", "Gardevoir", "Rayquaza", "Lucario", "Garchomp",
    "Darkrai", "Giratina", "Arceus", "Zoroark", "Greninja", "Sylveon", "Mimikyu",
    "Zacian", "Zamazenta", "Eternatus", "Sprigatito", "Fuecoco", "Quaxly",
    "Koraidon", "Miraidon",
]


def determine_era(copyright_text: str) -> Optional[str]:
    """Name the printing era suggested by a copyright line, if any."""
    for era, pattern in COPYRIGHT_PATTERNS:
        if pattern.search(copyright_text):
            return era
    return None


def extract_collector_number(text: str) -> Optional[str]:
    """Pull a collector number such as ``25/102`` out of free text."""
    for pattern in COLLECTOR_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"{match.group(1)}/{match.group(2)}"
    return None


def is_holographic_indicator(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in HOLO_KEYWORDS)


def find_set_by_symbol(symbol: str) -> Optional[str]:
    wanted = symbol.lower().strip()
    for name, info in POKEMON_SETS.items():
        if info.symbol == wanted:
            return name
    return None


def resolve_set_name(text: str, threshold: float = CORRECTION_THRESHOLD) -> Optional[FuzzyMatch]:
    """
    Map free text onto a canonical set name.

    Exact symbols resolve directly; otherwise names and aliases are fuzzy
    matched and an alias hit is reported under its canonical name.
    """
    if not text or not text.strip():
        return None

    by_symbol = find_set_by_symbol(text)
    if by_symbol:
        return FuzzyMatch(by_symbol, 1.0)

    labels: List[str] = []
    owners: List[str] = []
    for name, info in POKEMON_SETS.items():
        for label in (name, *info.aliases):
            labels.append(label)
            owners.append(name)

    match = best_match(text, labels, threshold)
    if match is None:
        return None
    return FuzzyMatch(owners[labels.index(match.value)], match.confidence)


def correct_species_name(text: str, threshold: float = CORRECTION_THRESHOLD) -> Optional[FuzzyMatch]:
    """Closest known species for an OCR'd name, or None when nothing is close."""
    return best_match(text, POKEMON_SPECIES, threshold)


def is_known_species(text: str) -> bool:
    wanted = normalize(text)
    return any(normalize(species) == wanted for species in POKEMON_SPECIES)


def canonical_rarity(text: Optional[str]) -> Optional[str]:
    """Map rarity text onto a canonical rarity label, preferring the most specific."""
    if not text:
        return None
    lowered = text.lower().strip()
    for rarity in RARITY_PATTERNS:
        if lowered == rarity.lower():
            return rarity

    # Later entries are more specific, so they win ties
    best: Optional[Tuple[int, int, str]] = None
    for index, (rarity, patterns) in enumerate(RARITY_PATTERNS.items()):
        score = sum(len(pattern) for pattern in patterns if pattern in lowered)
        if score and (best is None or (score, index) > best[:2]):
            best = (score, index, rarity)
    return best[2] if best else None
