"""
CLI Integration Tests

Drives the budget-lifecycle CLI end-to-end: a plan is drafted, reviewed,
handed to a member and reconciled, all through typer commands.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from budget_lifecycle.cli.main import app
from tests.helpers import (
    DEPT_ID,
    EVENT_ID,
    HOD_USER,
    HOOC_USER,
    MEMBER_ID,
    MEMBER_USER,
    build_directory,
)

runner = CliRunner()

ITEMS = json.dumps(
    [
        {"itemId": "banner", "name": "Banner", "qty": 2, "unitCost": 150000, "category": "print"},
        {"itemId": "tape", "name": "Tape", "qty": 10, "unitCost": 5000},
    ]
)


@pytest.fixture
def workspace(tmp_path: Path) -> tuple[Path, Path]:
    """Initialized database plus the standard directory file"""
    db_path = tmp_path / "budgets.db"
    directory_path = tmp_path / "directory.json"
    directory_path.write_text(build_directory().snapshot().model_dump_json(), encoding="utf-8")

    result = runner.invoke(app, ["init", "--db", str(db_path), "--directory", str(directory_path)])
    assert result.exit_code == 0, result.output
    return db_path, directory_path


def invoke(workspace: tuple[Path, Path], *args: str):
    db_path, directory_path = workspace
    return runner.invoke(app, [*args, "--db", str(db_path), "--directory", str(directory_path)])


def create_plan(workspace: tuple[Path, Path]) -> str:
    result = invoke(
        workspace,
        "budget", "create",
        "--event", EVENT_ID,
        "--department", DEPT_ID,
        "--name", "Logistics",
        "--items", ITEMS,
        "--as", HOD_USER,
    )
    assert result.exit_code == 0, result.output
    return result.output.split("Created budget: ")[1].split("\n")[0].strip()


# =============================================================================
# init / directory
# =============================================================================


def test_init_creates_database_and_empty_directory(tmp_path: Path) -> None:
    db_path = tmp_path / "budgets.db"
    directory_path = tmp_path / "directory.json"

    result = runner.invoke(app, ["init", "--db", str(db_path), "--directory", str(directory_path)])

    assert result.exit_code == 0
    assert "Created empty directory file" in result.output
    assert "Initialized budget database" in result.output
    assert db_path.exists()
    assert json.loads(directory_path.read_text(encoding="utf-8"))["events"] == []


def test_init_refuses_existing_database(workspace: tuple[Path, Path]) -> None:
    result = invoke(workspace, "init")
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_directory_show(workspace: tuple[Path, Path]) -> None:
    result = runner.invoke(app, ["directory", "show", "--directory", str(workspace[1])])
    assert result.exit_code == 0
    assert "Events: 1" in result.output
    assert "evt-1/dep-logistics Logistics (lead: u-hod)" in result.output
    assert "Members: 7" in result.output


def test_missing_database(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["budget", "submit", "--id", "plan-1", "--as", HOD_USER, "--db", str(tmp_path / "no.db")]
    )
    assert result.exit_code == 1
    assert "Database not found" in result.output


# =============================================================================
# Full lifecycle
# =============================================================================


def test_budget_full_lifecycle_via_cli(workspace: tuple[Path, Path]) -> None:
    """Draft → review → hand-off → reconciliation"""
    plan_id = create_plan(workspace)

    result = invoke(workspace, "budget", "submit", "--id", plan_id, "--as", HOD_USER)
    assert result.exit_code == 0
    assert "Version: 2" in result.output

    decisions = json.dumps(
        [{"itemId": "banner", "status": "approved"}, {"itemId": "tape", "status": "approved"}]
    )
    result = invoke(
        workspace, "budget", "review", "--id", plan_id, "--decisions", decisions, "--as", HOOC_USER
    )
    assert result.exit_code == 0
    assert "Status: approved" in result.output

    for item_id in ("banner", "tape"):
        result = invoke(
            workspace,
            "item", "assign",
            "--plan", plan_id,
            "--item", item_id,
            "--member", MEMBER_ID,
            "--as", HOD_USER,
        )
        assert result.exit_code == 0
        assert f"Assigned item {item_id} to {MEMBER_ID}" in result.output

    result = invoke(workspace, "budget", "send", "--id", plan_id, "--as", HOD_USER)
    assert result.exit_code == 0

    result = invoke(
        workspace,
        "expense", "report",
        "--plan", plan_id,
        "--item", "banner",
        "--amount", "320000",
        "--as", MEMBER_USER,
    )
    assert result.exit_code == 0
    assert "Comparison: greater" in result.output

    result = invoke(
        workspace,
        "expense", "report",
        "--plan", plan_id,
        "--item", "tape",
        "--evidence", '[{"type": "image", "url": "https://x/tape.png"}]',
        "--paid",
        "--as", MEMBER_USER,
    )
    assert result.exit_code == 0

    result = invoke(workspace, "expense", "submit", "--plan", plan_id, "--item", "banner", "--as", MEMBER_USER)
    assert result.exit_code == 0
    assert "All items" not in result.output

    result = invoke(workspace, "expense", "submit", "--plan", plan_id, "--item", "tape", "--as", MEMBER_USER)
    assert result.exit_code == 0
    assert "All items of this budget are now submitted" in result.output

    result = invoke(
        workspace, "budget", "list", "--event", EVENT_ID, "--status", "completed", "--as", HOOC_USER
    )
    assert result.exit_code == 0
    assert plan_id in result.output
    assert "submitted=2/2" in result.output

    result = invoke(workspace, "budget", "show", "--id", plan_id, "--as", MEMBER_USER)
    assert result.exit_code == 0
    view = json.loads(result.stdout)
    assert view["status"] == "sent_to_members"
    assert view["totalActual"] == "320000"

    result = invoke(workspace, "budget", "stats", "--event", EVENT_ID, "--as", HOOC_USER)
    assert result.exit_code == 0
    assert json.loads(result.stdout)["totalEstimated"] == "350000"


def test_undo_and_toggle_paid(workspace: tuple[Path, Path]) -> None:
    plan_id = create_plan(workspace)
    invoke(workspace, "budget", "submit", "--id", plan_id, "--as", HOD_USER)
    decisions = json.dumps(
        [{"itemId": "banner", "status": "approved"}, {"itemId": "tape", "status": "approved"}]
    )
    invoke(workspace, "budget", "review", "--id", plan_id, "--decisions", decisions, "--as", HOOC_USER)
    invoke(workspace, "item", "assign", "--plan", plan_id, "--item", "banner", "--member", MEMBER_ID, "--as", HOD_USER)
    invoke(workspace, "expense", "report", "--plan", plan_id, "--item", "banner", "--amount", "1", "--as", MEMBER_USER)

    result = invoke(workspace, "expense", "toggle-paid", "--plan", plan_id, "--item", "banner", "--as", HOD_USER)
    assert result.exit_code == 0
    assert "is now paid" in result.output

    invoke(workspace, "expense", "submit", "--plan", plan_id, "--item", "banner", "--as", MEMBER_USER)
    result = invoke(workspace, "expense", "undo", "--plan", plan_id, "--item", "banner", "--as", MEMBER_USER)
    assert result.exit_code == 0
    assert "back in draft" in result.output


# =============================================================================
# Errors
# =============================================================================


def test_domain_errors_exit_with_category(workspace: tuple[Path, Path]) -> None:
    plan_id = create_plan(workspace)

    result = invoke(workspace, "budget", "submit", "--id", plan_id, "--as", MEMBER_USER)
    assert result.exit_code == 1
    assert "Error (Forbidden)" in result.output

    result = invoke(workspace, "budget", "send", "--id", plan_id, "--as", HOD_USER)
    assert result.exit_code == 1
    assert "Error (InvalidState)" in result.output


def test_invalid_json_option(workspace: tuple[Path, Path]) -> None:
    result = invoke(
        workspace,
        "budget", "create",
        "--event", EVENT_ID,
        "--department", DEPT_ID,
        "--items", "[not json",
        "--as", HOD_USER,
    )
    assert result.exit_code == 1
    assert "--items is not valid JSON" in result.output


def test_draft_delete_and_listing(workspace: tuple[Path, Path]) -> None:
    plan_id = create_plan(workspace)

    result = invoke(workspace, "budget", "list", "--event", EVENT_ID, "--department", DEPT_ID, "--as", HOD_USER)
    assert plan_id in result.output

    result = invoke(workspace, "budget", "delete", "--id", plan_id, "--as", HOD_USER)
    assert result.exit_code == 0

    result = invoke(workspace, "budget", "list", "--event", EVENT_ID, "--department", DEPT_ID, "--as", HOD_USER)
    assert "No budgets found" in result.output
