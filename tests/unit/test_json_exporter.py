"""Tests for JSON exporter."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from spelltree.export.json_exporter import JsonExporter
from spelltree.pipeline.parser import SpellTreeParser
from tests.fixtures.tree_fixtures import make_healthy_tree, make_two_cycle_tree

if TYPE_CHECKING:
    from pathlib import Path


class TestJsonExporter:
    def test_creates_output_file(self, tmp_path: Path) -> None:
        exporter = JsonExporter()
        result = exporter.export(SpellTreeParser().parse(make_healthy_tree()), tmp_path / "out")

        assert result.exists()
        assert result.name == "tree.json"

    def test_layout_shape(self, tmp_path: Path) -> None:
        """Output carries nodes, edges, schools and allFormIds in camelCase."""
        exporter = JsonExporter()
        path = exporter.export(SpellTreeParser().parse(make_healthy_tree()), tmp_path)

        data = json.loads(path.read_text())

        assert set(data) == {"nodes", "edges", "schools", "allFormIds"}
        assert {"from": "D0", "to": "D1"} in data["edges"]
        destruction = data["schools"]["Destruction"]
        assert destruction["root"] == "D0"
        assert destruction["layoutStyle"] == "cascade"
        assert destruction["maxDepth"] == 2
        assert data["schools"]["Restoration"]["layoutStyle"] == "radial"

    def test_raw_export_reflects_repairs(self, tmp_path: Path) -> None:
        """The raw export carries repaired lists; the stored source is untouched."""
        parse_result = SpellTreeParser().parse(make_two_cycle_tree())
        original_raw = json.loads(json.dumps(parse_result.raw))

        path = JsonExporter().export_raw(parse_result, tmp_path)

        exported = json.loads(path.read_text())
        nodes = {n["formId"]: n for n in exported["schools"]["Destruction"]["nodes"]}
        assert "C" not in nodes["B"]["prerequisites"]
        assert "B" in nodes["R"]["children"] or "B" in nodes["A"]["children"]
        assert exported["version"] == "1.0"
        assert parse_result.raw == original_raw

    def test_failed_parse_rejected(self, tmp_path: Path) -> None:
        failed = SpellTreeParser().parse("not json")

        with pytest.raises(ValueError, match="failed parse"):
            JsonExporter().export(failed, tmp_path)
