"""Manifest reading and writing."""
import json
import logging
from pathlib import Path
from typing import Dict, Union

from flaglayers.types import ManifestEntry

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


def write_manifest(
    entries: Dict[str, ManifestEntry],
    output_dir: Union[str, Path]
) -> Path:
    """
    Write ``manifest.json`` mapping image keys to their entries.

    Keys are sorted so identical runs produce identical bytes.
    """
    path = Path(output_dir) / MANIFEST_NAME
    data = {key: entries[key].to_dict() for key in sorted(entries)}
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Wrote manifest with {len(data)} entries to {path}")
    return path


def read_manifest(path: Union[str, Path]) -> Dict[str, ManifestEntry]:
    """Load a manifest file; a missing file reads as empty."""
    path = Path(path)
    if path.is_dir():
        path = path / MANIFEST_NAME
    if not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    return {key: ManifestEntry.from_dict(value) for key, value in data.items()}
