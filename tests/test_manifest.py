"""Tests for manifest files and location lookup."""
import json

import pytest

from flaglayers.locations import MANUAL_LOCATIONS, load_locations, resolve_location
from flaglayers.manifest import MANIFEST_NAME, read_manifest, write_manifest
from flaglayers.types import Location, ManifestEntry


class TestManifest:
    """Test manifest writing and reading."""

    def _entries(self):
        return {
            "us": ManifestEntry(["#ff0000", "#ffffff"], ["us__00.png", "us__01.png"], [0, 1],
                                "us__full.svg", Location(38.0, -97.0)),
            "ad": ManifestEntry(["#0000ff"], ["ad__00.png"], [0], "ad__full.svg"),
        }

    def test_layout(self, tmp_path):
        path = write_manifest(self._entries(), tmp_path)

        assert path == tmp_path / MANIFEST_NAME
        data = json.loads(path.read_text())
        assert list(data) == ["ad", "us"]
        assert data["us"] == {
            "colors": ["#ff0000", "#ffffff"],
            "files": ["us__00.png", "us__01.png"],
            "z": [0, 1],
            "full": "us__full.svg",
            "location": {"lat": 38.0, "lon": -97.0},
        }
        assert data["ad"]["location"] is None

    def test_stable_bytes(self, tmp_path):
        first = write_manifest(self._entries(), tmp_path).read_bytes()
        second = write_manifest(dict(reversed(list(self._entries().items()))), tmp_path).read_bytes()
        assert first == second
        assert first.endswith(b"\n")

    def test_read_back(self, tmp_path):
        write_manifest(self._entries(), tmp_path)
        assert read_manifest(tmp_path) == self._entries()

    def test_read_missing(self, tmp_path):
        assert read_manifest(tmp_path / "nothing.json") == {}


class TestLocations:
    """Test location dataset loading and resolution."""

    def test_load(self, tmp_path):
        path = tmp_path / "countries.json"
        path.write_text(json.dumps([
            {"cca2": "FR", "latlng": [46, 2]},
            {"cca2": "XK"},
            {"latlng": [1, 2]},
            {"cca2": "NO", "latlng": ["a", "b"]},
        ]))

        table = load_locations(path)

        assert table == {"fr": Location(46.0, 2.0)}

    def test_none_path(self):
        assert load_locations(None) == {}

    def test_bad_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(ValueError):
            load_locations(path)

    def test_resolution_order(self):
        table = {"gb-eng": Location(0.0, 0.0), "fr": Location(46.0, 2.0)}

        assert resolve_location("FR", table) == Location(46.0, 2.0)
        assert resolve_location("gb-eng", table) == Location(0.0, 0.0)
        assert resolve_location("gb-sct") == MANUAL_LOCATIONS["gb-sct"]
        assert resolve_location("xx") is None
