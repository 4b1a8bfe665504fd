"""Validation result types shared by the tree checks and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


@dataclass
class ValidationCheck:
    """Result of a single validation check.

    Attributes:
        name: Identifier for the check.
        severity: "pass" or "fail".
        message: Human-readable description of the result.
    """

    name: str
    severity: Literal["pass", "fail"]
    message: str = ""


@dataclass
class ValidationReport:
    """Aggregated results of validation checks."""

    checks: list[ValidationCheck] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        """True if any check has severity 'fail'."""
        return any(c.severity == "fail" for c in self.checks)

    def get(self, name: str) -> ValidationCheck | None:
        """Look up a check by name."""
        return next((c for c in self.checks if c.name == name), None)

    @property
    def summary(self) -> str:
        """Human-readable summary, e.g. ``"1 failed, 4 passed"``."""
        counts = {
            "failed": sum(c.severity == "fail" for c in self.checks),
            "passed": sum(c.severity == "pass" for c in self.checks),
        }
        return ", ".join(f"{n} {label}" for label, n in counts.items() if n)
