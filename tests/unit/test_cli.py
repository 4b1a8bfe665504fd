"""Test CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from spelltree import __version__
from spelltree.cli import app
from tests.fixtures.tree_fixtures import make_deep_tree, make_healthy_tree, make_two_cycle_tree

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Any

runner = CliRunner()


@pytest.fixture(autouse=True)
def work_in_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run each command from an empty directory so no local spelltree.yaml is picked up."""
    monkeypatch.chdir(tmp_path)


def _write_tree(tmp_path: Path, doc: dict[str, Any], name: str = "tree_in.json") -> Path:
    path = tmp_path / name
    path.write_text(json.dumps(doc))
    return path


def test_version_command() -> None:
    """Test spelltree version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.output


def test_no_args_shows_help() -> None:
    """Test that no arguments shows help."""
    result = runner.invoke(app, [])
    # no_args_is_help=True returns exit code 2 (not 0 like --help)
    assert result.exit_code == 2
    assert "SpellTree" in result.output


# --- Check Command Tests ---


def test_check_healthy_tree(tmp_path: Path) -> None:
    """A valid tree passes the check."""
    path = _write_tree(tmp_path, make_healthy_tree())

    result = runner.invoke(app, ["check", str(path)])

    assert result.exit_code == 0
    assert "All spells are obtainable" in result.output


def test_check_reports_unreachable(tmp_path: Path) -> None:
    """A tree with a cut-off cycle fails the check."""
    path = _write_tree(tmp_path, make_two_cycle_tree())

    result = runner.invoke(app, ["check", str(path)])

    assert result.exit_code == 1
    assert "Destruction" in result.output
    assert "B, C" in result.output


def test_check_bad_json(tmp_path: Path) -> None:
    """Undecodable input exits with an error."""
    path = tmp_path / "broken.json"
    path.write_text("{nope")

    result = runner.invoke(app, ["check", str(path)])

    assert result.exit_code == 1
    assert "Could not parse tree" in result.output


def test_check_missing_file(tmp_path: Path) -> None:
    """A missing input file exits with an error."""
    result = runner.invoke(app, ["check", str(tmp_path / "absent.json")])

    assert result.exit_code == 1
    assert "File not found" in result.output


# --- Repair Command Tests ---


def test_repair_writes_exports(tmp_path: Path) -> None:
    """Repair fixes the cycle and writes both export files."""
    path = _write_tree(tmp_path, make_two_cycle_tree())
    out = tmp_path / "out"

    result = runner.invoke(app, ["repair", str(path), "-o", str(out)])

    assert result.exit_code == 0, result.output
    layout = json.loads((out / "tree.json").read_text())
    nodes = {n["formId"]: n for n in layout["nodes"]}
    assert set(nodes["B"]["prerequisites"]) <= {"R", "A"}
    assert nodes["R"]["state"] == "available"
    assert layout["allFormIds"] == ["R", "A", "B", "C"]

    raw = json.loads((out / "tree.raw.json").read_text())
    raw_b = next(n for n in raw["schools"]["Destruction"]["nodes"] if n["formId"] == "B")
    assert raw_b["prerequisites"] == nodes["B"]["prerequisites"]


def test_repair_reports_skipped_school(tmp_path: Path) -> None:
    """Skipped schools are listed in the output."""
    doc = make_healthy_tree()
    doc["schools"]["Broken"] = {"nodes": []}
    path = _write_tree(tmp_path, doc)

    result = runner.invoke(app, ["repair", str(path), "-o", str(tmp_path / "out")])

    assert result.exit_code == 0
    assert "Skipped school" in result.output
    assert "missing root" in result.output


def test_repair_uses_config_file(tmp_path: Path) -> None:
    """A --config file that cannot be loaded aborts."""
    path = _write_tree(tmp_path, make_healthy_tree())
    config = tmp_path / "bad.yaml"
    config.write_text("")

    result = runner.invoke(app, ["repair", path.name, "--config", config.name])

    assert result.exit_code == 1
    assert "Empty file" in result.output


def test_repair_missing_schools(tmp_path: Path) -> None:
    """A document without schools cannot be repaired."""
    path = _write_tree(tmp_path, {"version": "1.0"})

    result = runner.invoke(app, ["repair", str(path), "-o", str(tmp_path / "out")])

    assert result.exit_code == 1
    assert "Missing schools" in result.output


# --- Inject Command Tests ---


def test_inject_adds_prerequisites(tmp_path: Path) -> None:
    """Inject adds edges and the exported tree contains them."""
    path = _write_tree(tmp_path, make_deep_tree())
    out = tmp_path / "out"

    result = runner.invoke(
        app,
        ["inject", str(path), "-o", str(out), "--seed", "4", "--chance", "100", "--min-depth", "1"],
    )

    assert result.exit_code == 0, result.output
    assert "Injected" in result.output
    layout = json.loads((out / "tree.json").read_text())
    assert len(layout["edges"]) > 18


def test_inject_zero_chance(tmp_path: Path) -> None:
    """chance=0 injects nothing but still exports."""
    path = _write_tree(tmp_path, make_deep_tree())
    out = tmp_path / "out"

    result = runner.invoke(app, ["inject", str(path), "-o", str(out), "--chance", "0"])

    assert result.exit_code == 0
    assert "Injected 0 prerequisite(s)" in result.output
    assert len(json.loads((out / "tree.json").read_text())["edges"]) == 18


def test_log_dir_writes_jsonl(tmp_path: Path) -> None:
    """--log-dir writes repair events to debug.jsonl."""
    path = _write_tree(tmp_path, make_two_cycle_tree())
    log_dir = tmp_path / "logs"

    result = runner.invoke(
        app, ["-vv", "--log-dir", str(log_dir), "repair", str(path), "-o", str(tmp_path / "out")]
    )

    assert result.exit_code == 0
    assert (log_dir / "debug.jsonl").exists()
