"""
Budget Lifecycle CLI

Command-line interface over BudgetEngine. Events, departments and members
come from a directory JSON file ({"events": [...], "departments": [...],
"members": [...]}); budgets live in the SQLite database.

Usage:
    budget-lifecycle init --db budgets.db --directory directory.json
    budget-lifecycle budget create --event evt-1 --department dep-1 --name "Stage" \
        --items '[{"name": "Banner", "qty": 2, "unitCost": 150000}]' --as hod-user
    budget-lifecycle budget submit --id <plan_id> --as hod-user
    budget-lifecycle budget review --id <plan_id> --decisions '[...]' --as hooc-user
    budget-lifecycle item assign --plan <plan_id> --item <item_id> --member mem-1 --as hod-user
    budget-lifecycle expense report --plan <plan_id> --item <item_id> --amount 320000 --as member-user
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel
from typing_extensions import Annotated

from budget_lifecycle.directory import DirectorySnapshot, InMemoryDirectory
from budget_lifecycle.engine import BudgetEngine
from budget_lifecycle.kernel.errors import BudgetLifecycleError
from budget_lifecycle.kernel.logging import configure_logging
from budget_lifecycle.kernel.settings import EngineSettings
from budget_lifecycle.notify import LoggingSink

settings = EngineSettings.from_env()
configure_logging(json_output=settings.json_logs, log_level=settings.log_level)

app = typer.Typer(
    name="budget-lifecycle",
    help="Department budget proposals, review and expense reconciliation",
    add_completion=False,
)

budget_app = typer.Typer(help="Budget plan commands")
item_app = typer.Typer(help="Budget item assignment commands")
expense_app = typer.Typer(help="Expense reconciliation commands")
directory_app = typer.Typer(help="Event directory commands")

app.add_typer(budget_app, name="budget")
app.add_typer(item_app, name="item")
app.add_typer(expense_app, name="expense")
app.add_typer(directory_app, name="directory")

DEFAULT_DB = Path(".budget.db")
DEFAULT_DIRECTORY = Path(".budget-directory.json")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
DirectoryOption = Annotated[
    Optional[Path], typer.Option("--directory", help="Directory JSON file")
]
RequesterOption = Annotated[str, typer.Option("--as", help="User id of the requester")]


def load_directory(path: Optional[Path] = None) -> InMemoryDirectory:
    """Read the directory JSON file"""
    path = path or DEFAULT_DIRECTORY
    if not path.exists():
        typer.echo(f"Error: Directory file not found: {path}", err=True)
        raise typer.Exit(1)
    return InMemoryDirectory.from_snapshot(json.loads(path.read_text(encoding="utf-8")))


def get_engine(db_path: Optional[Path] = None, directory_path: Optional[Path] = None) -> BudgetEngine:
    """Get a BudgetEngine instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'budget-lifecycle init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return BudgetEngine(
        str(db),
        load_directory(directory_path),
        notification_sink=LoggingSink(),
        settings=settings,
    )


@contextmanager
def reported_errors() -> Iterator[None]:
    """Turn engine errors into a one-line message and exit code 1"""
    try:
        yield
    except BudgetLifecycleError as e:
        typer.echo(f"Error ({e.category}): {e}", err=True)
        raise typer.Exit(1) from e


def parse_json(raw: str, option: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: {option} is not valid JSON: {e}", err=True)
        raise typer.Exit(1) from e


def echo_model(model: BaseModel) -> None:
    typer.echo(json.dumps(model.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))


# Initialization


@app.command()
def init(
    db: Annotated[Path, typer.Option(help="Database path")] = DEFAULT_DB,
    directory: Annotated[Path, typer.Option(help="Directory JSON file")] = DEFAULT_DIRECTORY,
) -> None:
    """Initialize a new budget database (and an empty directory file)"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    if not directory.exists():
        directory.write_text(DirectorySnapshot().model_dump_json(indent=2), encoding="utf-8")
        typer.echo(f"✓ Created empty directory file: {directory}")

    BudgetEngine(str(db), load_directory(directory), settings=settings)
    typer.echo(f"✓ Initialized budget database: {db}")


# Directory commands


@directory_app.command("show")
def directory_show(directory: DirectoryOption = None) -> None:
    """Summarize the events, departments and members in the directory"""
    loaded = load_directory(directory)
    snapshot = loaded.snapshot()
    typer.echo(f"Events: {len(snapshot.events)}")
    for department in snapshot.departments:
        typer.echo(
            f"  {department.event_id}/{department.department_id} "
            f"{department.name} (lead: {department.leader_id or '-'})"
        )
    typer.echo(f"Members: {len(snapshot.members)}")


# Budget commands


@budget_app.command("create")
def budget_create(
    event_id: Annotated[str, typer.Option("--event", help="Event ID")],
    department_id: Annotated[str, typer.Option("--department", help="Department ID")],
    items: Annotated[str, typer.Option("--items", help="Budget items (JSON array)")],
    requester: RequesterOption,
    name: Annotated[Optional[str], typer.Option("--name", help="Budget name")] = None,
    currency: Annotated[Optional[str], typer.Option("--currency", help="Currency code")] = None,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Create a draft budget for a department"""
    engine = get_engine(db, directory)
    payload = {
        "name": name or settings.default_plan_name,
        "currency": currency,
        "items": parse_json(items, "--items"),
    }
    with reported_errors():
        plan = engine.create_budget(event_id, department_id, payload, requester)

    typer.echo(f"✓ Created budget: {plan.id}")
    typer.echo(f"  Name: {plan.name}")
    typer.echo(f"  Status: {plan.status.value}")
    typer.echo(f"  Items: {len(plan.items)}")
    typer.echo(f"  Total: {plan.total_cost()} {plan.currency}")


@budget_app.command("update")
def budget_update(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    payload: Annotated[str, typer.Option("--payload", help="Fields to replace (JSON object)")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Edit a budget that has not been decided yet"""
    engine = get_engine(db, directory)
    with reported_errors():
        plan = engine.update_budget(plan_id, parse_json(payload, "--payload"), requester)
    typer.echo(f"✓ Updated budget: {plan.id}")
    typer.echo(f"  Items: {len(plan.items)}")


@budget_app.command("categories")
def budget_categories(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    categories: Annotated[list[str], typer.Option("--category", help="Category (repeatable)")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Replace the budget's category list"""
    engine = get_engine(db, directory)
    with reported_errors():
        plan = engine.update_categories(plan_id, list(categories), requester)
    typer.echo(f"✓ Categories: {', '.join(plan.categories)}")


@budget_app.command("submit")
def budget_submit(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Submit a budget for review"""
    engine = get_engine(db, directory)
    with reported_errors():
        plan = engine.submit_budget(plan_id, requester)
    typer.echo(f"✓ Submitted budget: {plan.id}")
    typer.echo(f"  Version: {plan.version}")


@budget_app.command("recall")
def budget_recall(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Recall a submitted budget back to draft"""
    engine = get_engine(db, directory)
    with reported_errors():
        plan = engine.recall_budget(plan_id, requester)
    typer.echo(f"✓ Recalled budget: {plan.id}")


@budget_app.command("delete")
def budget_delete(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Delete a draft budget"""
    engine = get_engine(db, directory)
    with reported_errors():
        engine.delete_budget(plan_id, requester)
    typer.echo(f"✓ Deleted budget: {plan_id}")


@budget_app.command("review")
def budget_review(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    decisions: Annotated[
        str,
        typer.Option("--decisions", help='Item decisions (JSON array of {"itemId", "status", "feedback"})'),
    ],
    requester: RequesterOption,
    draft: Annotated[bool, typer.Option("--draft", help="Save without completing the review")] = False,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Review a submitted budget item by item"""
    engine = get_engine(db, directory)
    parsed = parse_json(decisions, "--decisions")
    with reported_errors():
        if draft:
            plan = engine.save_review_draft(plan_id, parsed, requester)
        else:
            plan = engine.complete_review(plan_id, parsed, requester)
    typer.echo(f"✓ {'Saved review draft' if draft else 'Reviewed'} budget: {plan.id}")
    typer.echo(f"  Status: {plan.status.value}")


@budget_app.command("send")
def budget_send(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Send an approved, fully assigned budget to members"""
    engine = get_engine(db, directory)
    with reported_errors():
        plan = engine.send_to_members(plan_id, requester)
    typer.echo(f"✓ Sent budget to members: {plan.id}")


@budget_app.command("visibility")
def budget_visibility(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    requester: RequesterOption,
    public: Annotated[bool, typer.Option("--public/--private", help="Visibility")] = False,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Make a budget public or private"""
    engine = get_engine(db, directory)
    with reported_errors():
        plan = engine.update_visibility(plan_id, public, requester)
    typer.echo(f"✓ Budget {plan.id} is now {'public' if plan.is_public else 'private'}")


@budget_app.command("show")
def budget_show(
    plan_id: Annotated[str, typer.Option("--id", help="Budget ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Show a budget with expense details (JSON)"""
    engine = get_engine(db, directory)
    with reported_errors():
        view = engine.get_budget(plan_id, requester)
    echo_model(view)


@budget_app.command("list")
def budget_list(
    event_id: Annotated[str, typer.Option("--event", help="Event ID")],
    requester: RequesterOption,
    department_id: Annotated[
        Optional[str], typer.Option("--department", help="Restrict to one department")
    ] = None,
    status: Annotated[
        Optional[str], typer.Option("--status", help="Status filter (or 'completed')")
    ] = None,
    page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
    limit: Annotated[Optional[int], typer.Option("--limit", help="Page size")] = None,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """List budgets of an event or department"""
    engine = get_engine(db, directory)
    with reported_errors():
        if department_id:
            result = engine.list_budgets_for_department(
                event_id, department_id, requester, page=page, limit=limit
            )
        else:
            result = engine.list_budgets_for_event(
                event_id, requester, status=status, page=page, limit=limit
            )

    if not result.items:
        typer.echo("No budgets found")
        return

    typer.echo(f"Budgets (page {result.page}/{max(result.pages, 1)}, {result.total} total):")
    for summary in result.items:
        typer.echo(
            f"  {summary.id} [{summary.status.value}] {summary.name} "
            f"dept={summary.department_id} total={summary.total_cost} {summary.currency} "
            f"submitted={summary.submitted_count}/{summary.total_items}"
        )


@budget_app.command("stats")
def budget_stats(
    event_id: Annotated[str, typer.Option("--event", help="Event ID")],
    requester: RequesterOption,
    department_id: Annotated[
        Optional[str], typer.Option("--department", help="Restrict to one department")
    ] = None,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Estimated vs actual spending (JSON)"""
    engine = get_engine(db, directory)
    with reported_errors():
        stats = engine.get_statistics(event_id, requester, department_id=department_id)
    echo_model(stats)


# Item commands


@item_app.command("assign")
def item_assign(
    plan_id: Annotated[str, typer.Option("--plan", help="Budget ID")],
    item_id: Annotated[str, typer.Option("--item", help="Item ID")],
    requester: RequesterOption,
    member_id: Annotated[
        Optional[str], typer.Option("--member", help="Member ID (omit to unassign)")
    ] = None,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Assign an approved item to a member (or unassign it)"""
    engine = get_engine(db, directory)
    with reported_errors():
        engine.assign_item(plan_id, item_id, member_id, requester)
    if member_id:
        typer.echo(f"✓ Assigned item {item_id} to {member_id}")
    else:
        typer.echo(f"✓ Unassigned item {item_id}")


# Expense commands


@expense_app.command("report")
def expense_report(
    plan_id: Annotated[str, typer.Option("--plan", help="Budget ID")],
    item_id: Annotated[str, typer.Option("--item", help="Item ID")],
    requester: RequesterOption,
    amount: Annotated[Optional[str], typer.Option("--amount", help="Actual amount")] = None,
    note: Annotated[Optional[str], typer.Option("--note", help="Member note")] = None,
    evidence: Annotated[
        Optional[str], typer.Option("--evidence", help="Evidence (JSON array)")
    ] = None,
    paid: Annotated[
        Optional[bool], typer.Option("--paid/--unpaid", help="Paid flag")
    ] = None,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Report the actual cost of an item"""
    engine = get_engine(db, directory)
    payload: dict[str, Any] = {}
    if amount is not None:
        payload["actualAmount"] = amount
    if note is not None:
        payload["memberNote"] = note
    if evidence is not None:
        payload["evidence"] = parse_json(evidence, "--evidence")
    if paid is not None:
        payload["isPaid"] = paid

    with reported_errors():
        record = engine.report_expense(plan_id, item_id, payload, requester)
    typer.echo(f"✓ Reported expense for item {item_id}")
    typer.echo(f"  Actual: {record.actual_amount} (estimated {record.estimated_total})")
    typer.echo(f"  Comparison: {record.comparison.value if record.comparison else '-'}")


@expense_app.command("toggle-paid")
def expense_toggle_paid(
    plan_id: Annotated[str, typer.Option("--plan", help="Budget ID")],
    item_id: Annotated[str, typer.Option("--item", help="Item ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Flip the paid flag of a reported expense"""
    engine = get_engine(db, directory)
    with reported_errors():
        record = engine.toggle_paid(plan_id, item_id, requester)
    typer.echo(f"✓ Item {item_id} is now {'paid' if record.is_paid else 'unpaid'}")


@expense_app.command("submit")
def expense_submit(
    plan_id: Annotated[str, typer.Option("--plan", help="Budget ID")],
    item_id: Annotated[str, typer.Option("--item", help="Item ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Submit your expense report for an assigned item"""
    engine = get_engine(db, directory)
    with reported_errors():
        result = engine.submit_expense(plan_id, item_id, requester)
    typer.echo(f"✓ Submitted expense for item {item_id}")
    if result.all_items_submitted:
        typer.echo("  All items of this budget are now submitted")


@expense_app.command("undo")
def expense_undo(
    plan_id: Annotated[str, typer.Option("--plan", help="Budget ID")],
    item_id: Annotated[str, typer.Option("--item", help="Item ID")],
    requester: RequesterOption,
    db: DbOption = None,
    directory: DirectoryOption = None,
) -> None:
    """Withdraw a submitted expense report"""
    engine = get_engine(db, directory)
    with reported_errors():
        engine.undo_submit_expense(plan_id, item_id, requester)
    typer.echo(f"✓ Expense for item {item_id} is back in draft")


if __name__ == "__main__":
    app()
