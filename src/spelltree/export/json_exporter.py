"""JSON export format.

Writes the finalized graph for the layout stage, and the source document
updated with the working graph's prerequisite lists.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from spelltree.graph.graph import SpellGraph
    from spelltree.pipeline.parser import ParseResult


class JsonExporter:
    """Export a parsed tree as structured JSON."""

    format_name = "json"

    def export(self, result: ParseResult, output_dir: Path) -> Path:
        """Write layout input (nodes, edges, schools, allFormIds) as formatted JSON.

        Args:
            result: Successful parse result.
            output_dir: Directory to write output files.

        Returns:
            Path to the generated tree.json file.
        """
        graph = _require_graph(result)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_file = output_dir / "tree.json"
        output_file.write_text(
            json.dumps(graph.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
        )
        return output_file

    def export_raw(self, result: ParseResult, output_dir: Path) -> Path:
        """Write the source document with repaired prerequisite and child lists.

        The stored ``result.raw`` is left untouched.

        Returns:
            Path to the generated tree.raw.json file.
        """
        graph = _require_graph(result)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_file = output_dir / "tree.raw.json"
        document = graph.to_raw_document(result.raw)
        output_file.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        return output_file


def _require_graph(result: ParseResult) -> SpellGraph:
    if not result.success or result.graph is None:
        raise ValueError(f"Cannot export a failed parse: {result.error}")
    return result.graph
