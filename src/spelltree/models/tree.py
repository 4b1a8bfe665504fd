"""Spell tree document and pass-result models.

Raw models describe the generated tree document exactly as the content
generator emits it (camelCase keys, loosely typed, many optional fields).
Validation here is the explicit construction step that turns absent or
malformed fields into documented defaults before anything reaches the
repair passes:

- tier: 0 when missing, non-numeric or negative
- children / prerequisites / hardPrereqs / softPrereqs: empty list when
  missing or not a list; ids coerced to str
- isRoot / isFlower / _fromVisualFirst: False when null or not a flag
- flowerType: None when null or not a scalar
- layoutStyle: "radial" when missing

Result models are returned by the repair, orphan and injection passes and
mirror the structured log stream in a form tests and callers can inspect.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LAYOUT_STYLE = "radial"

# ---------------------------------------------------------------------------
# Raw document models
# ---------------------------------------------------------------------------


def _coerce_id_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


class RawNode(BaseModel):
    """A spell node as it appears in a generated tree document."""

    model_config = ConfigDict(extra="allow")

    form_id: str | None = Field(default=None, alias="formId")
    spell_id: str | None = Field(default=None, alias="spellId")
    plain_id: str | None = Field(default=None, alias="id")
    tier: int = 0
    children: list[str] = Field(default_factory=list)
    prerequisites: list[str] = Field(default_factory=list)
    x: float | None = None
    y: float | None = None
    angle: float = 0.0
    radius: float = 0.0
    from_visual_first: bool = Field(default=False, alias="_fromVisualFirst")
    is_flower: bool = Field(default=False, alias="isFlower")
    flower_type: str | None = Field(default=None, alias="flowerType")
    is_root: bool = Field(default=False, alias="isRoot")
    hard_prereqs: list[str] = Field(default_factory=list, alias="hardPrereqs")
    soft_prereqs: list[str] = Field(default_factory=list, alias="softPrereqs")
    soft_needed: int = Field(default=0, alias="softNeeded")

    @field_validator("form_id", "spell_id", "plain_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("tier", "soft_needed", mode="before")
    @classmethod
    def _non_negative_int(cls, value: Any) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            return 0
        return max(number, 0)

    @field_validator(
        "children", "prerequisites", "hard_prereqs", "soft_prereqs", mode="before"
    )
    @classmethod
    def _id_list(cls, value: Any) -> list[str]:
        return _coerce_id_list(value)

    @field_validator("is_root", "is_flower", "from_visual_first", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        if isinstance(value, (bool, int, float)):
            return bool(value)
        return False

    @field_validator("flower_type", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (bool, dict, list)):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("angle", "radius", mode="before")
    @classmethod
    def _float_or_zero(cls, value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("x", "y", mode="before")
    @classmethod
    def _float_or_none(cls, value: Any) -> float | None:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def identifier(self) -> str | None:
        """First present of formId, spellId, id."""
        return self.form_id or self.spell_id or self.plain_id

    @property
    def has_precomputed_position(self) -> bool:
        """True when an alternate layout pipeline already placed this node."""
        if self.from_visual_first:
            return True
        return bool(self.x) and bool(self.y)


class RawSchool(BaseModel):
    """One school entry of a generated tree document.

    ``nodes`` stays a list of plain mappings so each node can be validated
    (and skipped) individually during ingestion.
    """

    model_config = ConfigDict(extra="allow")

    root: str | None = None
    nodes: list[dict[str, Any]] | None = None
    layout_style: str = Field(default=DEFAULT_LAYOUT_STYLE, alias="layoutStyle")
    slice_info: Any = Field(default=None, alias="sliceInfo")
    config_used: Any = None

    @field_validator("root", mode="before")
    @classmethod
    def _stringify_root(cls, value: Any) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("nodes", mode="before")
    @classmethod
    def _mapping_nodes(cls, value: Any) -> list[dict[str, Any]] | None:
        if not isinstance(value, list):
            return None
        return [n for n in value if isinstance(n, dict)]

    @field_validator("layout_style", mode="before")
    @classmethod
    def _default_layout(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_LAYOUT_STYLE
        return value.strip()


# ---------------------------------------------------------------------------
# Pass results
# ---------------------------------------------------------------------------


class SchoolSkip(BaseModel):
    """A school that ingestion could not use."""

    school: str
    reason: str


RepairKind = Literal[
    "root_prerequisite_removed",
    "prerequisite_replaced",
    "prerequisite_dropped",
    "reconnected",
    "gentle_fix",
    "forced_release",
    "orphan_attached",
]


class RepairAction(BaseModel):
    """One structural change made by a repair pass."""

    kind: RepairKind
    school: str
    node_id: str
    removed: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)


class RepairSummary(BaseModel):
    """Outcome of repairing one school."""

    school: str
    fixes: int = 0
    passes: int = 0
    unreachable_before: list[str] = Field(default_factory=list)
    unreachable_after: list[str] = Field(default_factory=list)
    actions: list[RepairAction] = Field(default_factory=list)

    @property
    def fully_reachable(self) -> bool:
        """True if every node of the school is unlockable after repair."""
        return not self.unreachable_after


class InjectedEdge(BaseModel):
    """A prerequisite edge added by procedural injection."""

    school: str
    node_id: str
    prerequisite: str


class InjectionSummary(BaseModel):
    """Outcome of one procedural injection run."""

    considered: int = 0
    injected: list[InjectedEdge] = Field(default_factory=list)

    @property
    def count(self) -> int:
        """Number of prerequisite edges added."""
        return len(self.injected)


class UnreachableNode(BaseModel):
    """A node the simulator cannot unlock, with what blocks it."""

    node_id: str
    tier: int = 0
    current_prereqs: list[str] = Field(default_factory=list)
    blocking_prereqs: list[str] = Field(default_factory=list)


class UnreachableReport(BaseModel):
    """Reachability analysis of one school, used for generator self-correction."""

    school: str
    total: int = 0
    reachable: int = 0
    unreachable: list[UnreachableNode] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        """True if every node is reachable."""
        return not self.unreachable

    def to_llm_feedback(self) -> str:
        """Format unreachable spells as a correction request for the generator."""
        if self.valid:
            return f"All {self.total} spells in {self.school} are obtainable."

        lines = [
            f"## Unreachable Spells in {self.school}",
            "",
            f"{len(self.unreachable)} of {self.total} spells can never be learned "
            "because their prerequisites form a cycle or depend on spells that are "
            "themselves unreachable.",
            "",
        ]
        for entry in self.unreachable:
            blocking = ", ".join(f"`{b}`" for b in entry.blocking_prereqs) or "(none)"
            lines.append(f"- `{entry.node_id}` (tier {entry.tier}) blocked by {blocking}")
        lines.extend(
            [
                "",
                "**Fix**: give each listed spell at least one prerequisite chain that "
                "leads back to the school root without revisiting itself.",
            ]
        )
        return "\n".join(lines)
