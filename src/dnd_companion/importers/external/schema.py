"""
Sheet-builder JSON layout constants.

The builder wraps the character in an envelope whose ``data`` member is a
JSON *string*. Inside, most scalars are boxed as ``{"value": ...}`` and long
text is a rich-text document tree.
"""

# Envelope keys that identify a builder export
ENVELOPE_KEYS: frozenset[str] = frozenset({"jsonType", "edition", "version", "tags"})

# Keys every decoded character payload carries
PAYLOAD_KEYS: frozenset[str] = frozenset({"info", "stats", "vitality"})

# Keys only the builder writes into a payload; native saves never carry them
PAYLOAD_MARKER_KEYS: frozenset[str] = frozenset({"jsonType", "template"})

# info.<key>.value → Character attribute
INFO_FIELDS: dict[str, str] = {
    "race": "race",
    "charClass": "character_class",
    "background": "background",
    "alignment": "alignment",
    "playerName": "player_name",
}

# text.<key> → Character attribute (plain strings after flattening)
TEXT_FIELDS: dict[str, str] = {
    "personality": "personality_traits",
    "ideals": "ideals",
    "bonds": "bonds",
    "flaws": "flaws",
}

# Builder vitality keys
VITALITY_AC = "ac"
VITALITY_HP_MAX = "hp-max"
VITALITY_SPEED = "speed"

DEFAULT_SPEED = 30
