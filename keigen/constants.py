"""FFXIV job mitigation tables, buff metadata and ignore lists."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MitigationAbility:
    name: str
    recast_sec: int
    max_charges: int | None = None
    # Level-synced variants share a group; a fight only ever exposes one of them.
    exclusive_group: str | None = None


# Buffs/debuffs that never receive credit (food, generic vulnerability markers).
IGNORED_BUFFS: frozenset[str] = frozenset({
    "Well Fed",
    "Well-Done, Steak",
    "Physical Vulnerability Up",
    "Magic Vulnerability Up",
    "Vulnerability Up",
})

# Auto-attack ability names as they appear in EN/JP logs.
AUTO_ATTACK_NAMES: frozenset[str] = frozenset({"Attack", "攻撃"})

_TANK_ROLE = [
    MitigationAbility("Rampart", 90),
    MitigationAbility("Reprisal", 60),
]
_MELEE_ROLE = [MitigationAbility("Feint", 90)]
_CASTER_ROLE = [MitigationAbility("Addle", 90)]

JOB_MITIGATIONS: dict[str, list[MitigationAbility]] = {
    # ---- Tanks ----
    "Paladin": [
        *_TANK_ROLE,
        MitigationAbility("Guardian", 120, exclusive_group="paladin-sentinel"),
        MitigationAbility("Sentinel", 120, exclusive_group="paladin-sentinel"),
        MitigationAbility("Holy Sheltron", 5, exclusive_group="paladin-sheltron"),
        MitigationAbility("Sheltron", 5, exclusive_group="paladin-sheltron"),
        MitigationAbility("Intervention", 10),
        MitigationAbility("Divine Veil", 90),
        MitigationAbility("Passage of Arms", 120),
        MitigationAbility("Hallowed Ground", 420),
    ],
    "Warrior": [
        *_TANK_ROLE,
        MitigationAbility("Damnation", 120, exclusive_group="warrior-vengeance"),
        MitigationAbility("Vengeance", 120, exclusive_group="warrior-vengeance"),
        MitigationAbility("Bloodwhetting", 25, exclusive_group="warrior-intuition"),
        MitigationAbility("Raw Intuition", 25, exclusive_group="warrior-intuition"),
        MitigationAbility("Nascent Flash", 25),
        MitigationAbility("Thrill of Battle", 90),
        MitigationAbility("Shake It Off", 90),
        MitigationAbility("Holmgang", 240),
    ],
    "Dark Knight": [
        *_TANK_ROLE,
        MitigationAbility("Shadowed Vigil", 120, exclusive_group="darkknight-shadowwall"),
        MitigationAbility("Shadow Wall", 120, exclusive_group="darkknight-shadowwall"),
        MitigationAbility("Dark Mind", 60),
        MitigationAbility("The Blackest Night", 15),
        MitigationAbility("Oblation", 60, max_charges=2),
        MitigationAbility("Dark Missionary", 90),
        MitigationAbility("Living Dead", 300),
    ],
    "Gunbreaker": [
        *_TANK_ROLE,
        MitigationAbility("Great Nebula", 120, exclusive_group="gunbreaker-nebula"),
        MitigationAbility("Nebula", 120, exclusive_group="gunbreaker-nebula"),
        MitigationAbility("Camouflage", 90),
        MitigationAbility("Heart of Corundum", 25),
        MitigationAbility("Heart of Light", 90),
        MitigationAbility("Aurora", 60, max_charges=2),
        MitigationAbility("Superbolide", 360),
    ],
    # ---- Healers ----
    "White Mage": [
        MitigationAbility("Temperance", 120),
        MitigationAbility("Divine Benison", 30, max_charges=2),
        MitigationAbility("Aquaveil", 60),
        MitigationAbility("Liturgy of the Bell", 180),
        MitigationAbility("Plenary Indulgence", 60),
    ],
    "Scholar": [
        MitigationAbility("Sacred Soil", 30),
        MitigationAbility("Expedient", 120),
        MitigationAbility("Fey Illumination", 120),
        MitigationAbility("Protraction", 60),
        MitigationAbility("Seraphism", 180),
    ],
    "Astrologian": [
        MitigationAbility("Neutral Sect", 120),
        MitigationAbility("Collective Unconscious", 60),
        MitigationAbility("Exaltation", 60),
        MitigationAbility("Macrocosmos", 180),
        MitigationAbility("Umbral Draw", 55),
        MitigationAbility("Astral Draw", 55),
        MitigationAbility("The Bole", 1),
        MitigationAbility("The Spire", 1),
    ],
    "Sage": [
        MitigationAbility("Kerachole", 30),
        MitigationAbility("Holos", 120),
        MitigationAbility("Panhaima", 120),
        MitigationAbility("Haima", 120),
        MitigationAbility("Taurochole", 45),
        MitigationAbility("Philosophia", 180),
    ],
    # ---- Melee DPS ----
    "Monk": [*_MELEE_ROLE, MitigationAbility("Mantra", 90)],
    "Dragoon": [*_MELEE_ROLE],
    "Ninja": [*_MELEE_ROLE, MitigationAbility("Shade Shift", 120)],
    "Samurai": [*_MELEE_ROLE, MitigationAbility("Third Eye", 15)],
    "Reaper": [*_MELEE_ROLE, MitigationAbility("Arcane Crest", 30)],
    "Viper": [*_MELEE_ROLE],
    # ---- Physical Ranged DPS ----
    "Bard": [MitigationAbility("Troubadour", 90), MitigationAbility("Nature's Minne", 120)],
    "Machinist": [MitigationAbility("Tactician", 90), MitigationAbility("Dismantle", 120)],
    "Dancer": [MitigationAbility("Shield Samba", 90), MitigationAbility("Improvisation", 120)],
    # ---- Magical Ranged DPS ----
    "Black Mage": [*_CASTER_ROLE, MitigationAbility("Manaward", 120)],
    "Summoner": [*_CASTER_ROLE, MitigationAbility("Radiant Aegis", 60, max_charges=2)],
    "Red Mage": [*_CASTER_ROLE, MitigationAbility("Magick Barrier", 120)],
    "Pictomancer": [*_CASTER_ROLE, MitigationAbility("Tempera Coat", 60)],
}

_TANKS = ["Paladin", "Warrior", "Gunbreaker", "Dark Knight"]

# Buff name -> jobs known to apply it. Used to spot attribution gaps.
KNOWN_BUFF_JOBS: dict[str, list[str]] = {
    "Rampart": _TANKS,
    "Reprisal": _TANKS,
    "Sacred Soil": ["Scholar"],
    "Fey Illumination": ["Scholar"],
    "Desperate Measures": ["Scholar"],
    "Neutral Sect": ["Astrologian"],
    "Collective Unconscious": ["Astrologian"],
    "The Bole": ["Astrologian"],
    "Temperance": ["White Mage"],
    "Divine Benison": ["White Mage"],
    "Aquaveil": ["White Mage"],
    "Kerachole": ["Sage"],
    "Holos": ["Sage"],
    "Holosakos": ["Sage"],
    "Panhaima": ["Sage"],
    "Haima": ["Sage"],
    "Taurochole": ["Sage"],
    "Feint": ["Monk", "Samurai", "Ninja", "Dragoon", "Reaper", "Viper"],
    "Troubadour": ["Bard"],
    "Tactician": ["Machinist"],
    "Dismantle": ["Machinist"],
    "Shield Samba": ["Dancer"],
    "Addle": ["Black Mage", "Summoner", "Red Mage", "Pictomancer"],
    "Magick Barrier": ["Red Mage"],
    "Tempera Grassa": ["Pictomancer"],
    "Sheltron": ["Paladin"],
    "Holy Sheltron": ["Paladin"],
    "Knight's Resolve": ["Paladin"],
    "Intervention": ["Paladin"],
    "Guardian": ["Paladin"],
    "Divine Veil": ["Paladin"],
    "Passage of Arms": ["Paladin"],
    "Vengeance": ["Warrior"],
    "Damnation": ["Warrior"],
    "Bloodwhetting": ["Warrior"],
    "Stem the Flow": ["Warrior"],
    "Nascent Flash": ["Warrior"],
    "Shake It Off": ["Warrior"],
    "Shadow Wall": ["Dark Knight"],
    "Shadowed Vigil": ["Dark Knight"],
    "Dark Mind": ["Dark Knight"],
    "Dark Missionary": ["Dark Knight"],
    "Oblation": ["Dark Knight"],
    "The Blackest Night": ["Dark Knight"],
    "Camouflage": ["Gunbreaker"],
    "Nebula": ["Gunbreaker"],
    "Great Nebula": ["Gunbreaker"],
    "Heart of Light": ["Gunbreaker"],
    "Heart of Corundum": ["Gunbreaker"],
}

# Status name -> ability that grants it, for the "abilities only" display mode.
ABILITY_BY_BUFF: dict[str, str] = {
    "Desperate Measures": "Expedient",
    "Divine Caress": "Temperance",
    "Knight's Resolve": "Holy Sheltron",
    "Knight's Benediction": "Holy Sheltron",
    "Guardian's Will": "Guardian",
    "Stem the Flow": "Bloodwhetting",
    "Stem the Tide": "Bloodwhetting",
    "Nascent Glint": "Nascent Flash",
    "Vigilant": "Shadowed Vigil",
    "Undead Rebirth": "Living Dead",
    "Holosakos": "Holos",
    "Kerakeia": "Kerachole",
    "Panhaimatinon": "Panhaima",
    "Haimatinon": "Haima",
    "Clarity of Corundum": "Heart of Corundum",
    "Tempera Grassa": "Tempera Coat",
    "Seraphic Illumination": "Seraphism",
}
