"""Error types for spell tree parsing and repair.

Most anomalies in generated tree data (cycles, orphans, dangling references)
are repaired in place and never surface as exceptions. The types here cover
the remaining cases:

- ``TreeParseError``: the source document cannot be decoded at all.
- ``NodeNotFoundError``: a lookup by id failed (caller bug or bad reference).
- ``GraphCorruptionError``: post-pass invariant checks failed (code bug).

Integrity errors can format themselves as actionable feedback for a
generator retry loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


@dataclass
class TreeParseError(Exception):
    """Raised when a tree source document cannot be decoded.

    Attributes:
        reason: Human-readable cause, surfaced verbatim in ``ParseResult.error``.
    """

    reason: str

    def __post_init__(self) -> None:
        super().__init__(self.reason)


class GraphIntegrityError(Exception):
    """Base class for spell graph reference violations.

    Subclasses must implement to_llm_feedback() to provide actionable
    error messages for generator retry loops.
    """

    def to_llm_feedback(self) -> str:
        """Format error as actionable feedback for a generator retry.

        Returns:
            Human-readable error message explaining what's wrong and how to fix it.
        """
        raise NotImplementedError


@dataclass
class NodeNotFoundError(GraphIntegrityError):
    """Raised when referencing a spell node that is not in the graph.

    Attributes:
        node_id: The ID that was referenced but doesn't exist.
        available: List of valid IDs that could be used instead.
        context: Description of where the reference occurred.
    """

    node_id: str
    available: list[str] = field(default_factory=list)
    context: str = ""

    def __post_init__(self) -> None:
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"Node '{self.node_id}' not found"
        if self.context:
            msg += f" ({self.context})"
        return msg

    def suggestions(self) -> list[str]:
        """Find similar IDs that might be typos (form ids often differ by a digit)."""
        return get_close_matches(self.node_id, self.available, n=3, cutoff=0.6)

    def to_llm_feedback(self) -> str:
        """Format as actionable LLM feedback."""
        suggestions = self.suggestions()

        lines = [
            "## Reference Error: Spell Not Found",
            "",
            f"**You referenced**: `{self.node_id}`",
        ]

        if self.context:
            lines.append(f"**Context**: {self.context}")

        lines.extend(["", "**Problem**: No spell with this formId exists in the tree.", ""])

        if suggestions:
            lines.append("**Did you mean one of these?**")
            for s in suggestions:
                lines.append(f"  - `{s}`")
            lines.append("")

        if self.available:
            lines.append("**Valid formIds** (use exactly one of these):")
            for a in sorted(self.available)[:20]:
                lines.append(f"  - `{a}`")
            if len(self.available) > 20:
                lines.append(f"  - ... and {len(self.available) - 20} more")

        return "\n".join(lines)


@dataclass
class GraphCorruptionError(Exception):
    """Raised when post-pass invariant checks detect graph corruption.

    Unlike anomalies in the source data, this indicates a code bug: a repair
    or injection pass broke the prerequisite/children/edge symmetry.

    Attributes:
        violations: List of invariant violations found.
        stage: Pass after which corruption was detected.
    """

    violations: list[str]
    stage: str = ""

    def __post_init__(self) -> None:
        msg = f"Spell graph corruption detected after {self.stage or 'unknown'} pass"
        if self.violations:
            msg += f": {len(self.violations)} violation(s)"
        super().__init__(msg)

    def __str__(self) -> str:
        lines = [f"Spell graph corruption detected after {self.stage or 'unknown'} pass:"]
        for v in self.violations[:5]:
            lines.append(f"  - {v}")
        if len(self.violations) > 5:
            lines.append(f"  - ... and {len(self.violations) - 5} more")
        return "\n".join(lines)
