"""Pydantic models for spell tree documents and pass results."""

from spelltree.models.tree import (
    DEFAULT_LAYOUT_STYLE,
    InjectedEdge,
    InjectionSummary,
    RawNode,
    RawSchool,
    RepairAction,
    RepairKind,
    RepairSummary,
    SchoolSkip,
    UnreachableNode,
    UnreachableReport,
)

__all__ = [
    "DEFAULT_LAYOUT_STYLE",
    "InjectedEdge",
    "InjectionSummary",
    "RawNode",
    "RawSchool",
    "RepairAction",
    "RepairKind",
    "RepairSummary",
    "SchoolSkip",
    "UnreachableNode",
    "UnreachableReport",
]
