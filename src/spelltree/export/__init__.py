"""Export of parsed spell trees for the layout stage."""

from __future__ import annotations

from spelltree.export.json_exporter import JsonExporter

__all__ = ["JsonExporter"]
