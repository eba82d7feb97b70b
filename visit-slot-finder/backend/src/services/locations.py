from __future__ import annotations

import re
import unicodedata
from typing import Dict, Optional

from models import Coordinate


KNOWN_LOCATIONS: Dict[str, Dict[str, object]] = {
    "copenhagen": {
        "canonical": "Copenhagen",
        "coordinate": Coordinate(lat=55.6761, lon=12.5683),
        "aliases": {"kobenhavn", "cph", "office", "home"},
    },
    "koge": {
        "canonical": "Køge",
        "coordinate": Coordinate(lat=55.458, lon=12.182),
        "aliases": {"koge centrum"},
    },
    "hoje-taastrup": {
        "canonical": "Høje-Taastrup",
        "coordinate": Coordinate(lat=55.6517, lon=12.2722),
        "aliases": {"hoje taastrup", "taastrup"},
    },
    "roskilde": {
        "canonical": "Roskilde",
        "coordinate": Coordinate(lat=55.6415, lon=12.0803),
        "aliases": set(),
    },
    "hillerod": {
        "canonical": "Hillerød",
        "coordinate": Coordinate(lat=55.9267, lon=12.3109),
        "aliases": set(),
    },
    "client a": {
        "canonical": "Client A",
        "coordinate": Coordinate(lat=55.678, lon=12.565),
        "aliases": set(),
    },
    "client b": {
        "canonical": "Client B",
        "coordinate": Coordinate(lat=55.682, lon=12.578),
        "aliases": set(),
    },
}


def _normalize_name(text: Optional[str]) -> str:
    """Lowercase and fold Danish letters so "Køge" and "koge" match."""
    if not text:
        return ""
    lowered = text.strip().lower().replace("ø", "o").replace("æ", "ae").replace("å", "a")
    folded = unicodedata.normalize("NFKD", lowered).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"\s+", " ", folded).strip()


def lookup_known_location(name: Optional[str]) -> Optional[Coordinate]:
    """Coordinate for a known place name or alias, None when unknown."""
    key = _normalize_name(name)
    if not key:
        return None
    entry = KNOWN_LOCATIONS.get(key)
    if not entry:
        for value in KNOWN_LOCATIONS.values():
            if key in value.get("aliases", set()):  # type: ignore[operator]
                entry = value
                break
    if not entry:
        return None
    return entry["coordinate"]  # type: ignore[return-value]
