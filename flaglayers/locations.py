"""Geographic anchors for manifest entries."""
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from flaglayers.types import Location

logger = logging.getLogger(__name__)

# Keys with no ISO 3166-1 alpha-2 entry in country datasets.
MANUAL_LOCATIONS: Dict[str, Location] = {
    "arab": Location(25, 45),
    "cefta": Location(45.5, 17),
    "dg": Location(-7.3, 72.4),
    "eac": Location(1, 37),
    "es-ct": Location(41.9, 2.2),
    "es-ga": Location(42.6, -8),
    "es-pv": Location(43, -2.5),
    "gb-eng": Location(52, -1.5),
    "gb-sct": Location(56.5, -4),
    "gb-wls": Location(52.1, -3.5),
    "ic": Location(28.1, -15.4),
    "pc": Location(-25, -130.1),
    "sh-ac": Location(-7.9, -14.3),
    "sh-hl": Location(-15.9, -5.7),
    "sh-ta": Location(-37.1, -12.3),
}


def load_locations(path: Optional[Union[str, Path]]) -> Dict[str, Location]:
    """
    Load a country dataset in the world-countries JSON layout.

    Each record needs a ``cca2`` code and a ``latlng`` pair; records
    missing either are ignored.

    Args:
        path: JSON file path, or None for an empty table

    Returns:
        Mapping of lowercase ISO code to Location
    """
    if path is None:
        return {}
    path = Path(path)
    records = json.loads(path.read_text(encoding="utf-8"))

    table = {}
    for record in records:
        iso = record.get("cca2")
        latlng = record.get("latlng")
        if not isinstance(iso, str) or not isinstance(latlng, (list, tuple)) or len(latlng) < 2:
            continue
        lat, lon = latlng[0], latlng[1]
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            continue
        table[iso.lower()] = Location(float(lat), float(lon))

    logger.info(f"Loaded {len(table)} locations from {path}")
    return table


def resolve_location(key: str, table: Optional[Dict[str, Location]] = None) -> Optional[Location]:
    """Dataset location for ``key``, then the manual table, else None."""
    table = table or {}
    return table.get(key.lower()) or MANUAL_LOCATIONS.get(key.lower())
