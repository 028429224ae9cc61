"""
Test Helper Functions - Directory Fixtures and Plan Builders

Provides the standard event layout used across the suite plus builders that
walk a plan through the lifecycle, so each test can start from the status it
actually cares about.

Layout:
    evt-1
    ├── dep-logistics  (lead: u-hod)    members: mem-an, mem-binh, mem-dung (deactivated)
    └── dep-media      (lead: u-media)  members: mem-chi
    u-hooc is the organizing-committee lead (reviewer)
    u-stranger belongs to no event
"""

from decimal import Decimal
from typing import Any

from budget_lifecycle.budget.models import BudgetPlan
from budget_lifecycle.directory import Department, InMemoryDirectory, Member, Role
from budget_lifecycle.engine import BudgetEngine

EVENT_ID = "evt-1"
DEPT_ID = "dep-logistics"
OTHER_DEPT_ID = "dep-media"

HOOC_USER = "u-hooc"
HOD_USER = "u-hod"
OTHER_HOD_USER = "u-media"
MEMBER_USER = "u-an"
MEMBER_ID = "mem-an"
SECOND_MEMBER_USER = "u-binh"
SECOND_MEMBER_ID = "mem-binh"
OTHER_DEPT_MEMBER_USER = "u-chi"
OTHER_DEPT_MEMBER_ID = "mem-chi"
FORMER_MEMBER_USER = "u-dung"
FORMER_MEMBER_ID = "mem-dung"
DEPUTY_USER = "u-giang"
DEPUTY_ID = "mem-giang"
STRANGER = "u-stranger"


def build_directory() -> InMemoryDirectory:
    """Builder for the standard two-department event"""
    directory = InMemoryDirectory()
    directory.add_event(EVENT_ID)
    directory.add_department(
        Department(department_id=DEPT_ID, event_id=EVENT_ID, name="Logistics", leader_id=HOD_USER)
    )
    directory.add_department(
        Department(
            department_id=OTHER_DEPT_ID, event_id=EVENT_ID, name="Media", leader_id=OTHER_HOD_USER
        )
    )

    members = [
        ("mem-hooc", HOOC_USER, Role.HOOC, None, "Organizer"),
        ("mem-hod", HOD_USER, Role.HOD, DEPT_ID, "Logistics Lead"),
        ("mem-media", OTHER_HOD_USER, Role.HOD, OTHER_DEPT_ID, "Media Lead"),
        (MEMBER_ID, MEMBER_USER, Role.MEMBER, DEPT_ID, "Nguyen An"),
        (SECOND_MEMBER_ID, SECOND_MEMBER_USER, Role.MEMBER, DEPT_ID, "Tran Binh"),
        (OTHER_DEPT_MEMBER_ID, OTHER_DEPT_MEMBER_USER, Role.MEMBER, OTHER_DEPT_ID, "Le Chi"),
        (FORMER_MEMBER_ID, FORMER_MEMBER_USER, Role.MEMBER, DEPT_ID, "Pham Dung"),
    ]
    for member_id, user_id, role, department_id, full_name in members:
        directory.add_member(
            Member(
                member_id=member_id,
                user_id=user_id,
                event_id=EVENT_ID,
                role=role,
                department_id=department_id,
                full_name=full_name,
                email=f"{user_id}@example.org",
            )
        )
    directory.deactivate(FORMER_MEMBER_ID)
    return directory


def add_deputy(directory: InMemoryDirectory) -> Member:
    """A logistics member whose membership says HoD but who is not the lead"""
    return directory.add_member(
        Member(
            member_id=DEPUTY_ID,
            user_id=DEPUTY_USER,
            event_id=EVENT_ID,
            role=Role.HOD,
            department_id=DEPT_ID,
            full_name="Vo Giang",
            email=f"{DEPUTY_USER}@example.org",
        )
    )


def item_payload(
    name: str,
    qty: Any = 1,
    unit_cost: Any = 100,
    **extra: Any,
) -> dict[str, Any]:
    """
    Builder for one item of a create/update payload (camelCase keys)

    Example:
        >>> item_payload("Banner", qty=2, unit_cost=150000, category="print")
        {'name': 'Banner', 'qty': 2, 'unitCost': 150000, 'category': 'print'}
    """
    return {"name": name, "qty": qty, "unitCost": unit_cost, **extra}


def create_draft(
    engine: BudgetEngine,
    items: list[dict[str, Any]] | None = None,
    name: str = "Logistics budget",
    department_id: str = DEPT_ID,
    requester: str = HOD_USER,
) -> BudgetPlan:
    """Create a draft plan (two items by default: 2 x 150000 and 10 x 5000)"""
    if items is None:
        items = [
            item_payload("Banner", qty=2, unit_cost=150000, category="print"),
            item_payload("Tape", qty=10, unit_cost=5000, category="supplies"),
        ]
    return engine.create_budget(
        EVENT_ID, department_id, {"name": name, "items": items}, requester
    )


def decisions(plan: BudgetPlan, *statuses: str, feedback: str | None = None) -> list[dict[str, Any]]:
    """One decision per item, in item order"""
    result = []
    for item_id, status in zip(plan.items, statuses):
        decision: dict[str, Any] = {"itemId": item_id, "status": status}
        if feedback is not None:
            decision["feedback"] = feedback
        result.append(decision)
    return result


def approved_plan(engine: BudgetEngine, **kwargs: Any) -> BudgetPlan:
    """Draft → submitted → approved"""
    plan = create_draft(engine, **kwargs)
    requester = kwargs.get("requester", HOD_USER)
    plan = engine.submit_budget(plan.id, requester)
    approvals = decisions(plan, *(["approved"] * len(plan.items)))
    return engine.complete_review(plan.id, approvals, HOOC_USER)


def sent_plan(engine: BudgetEngine, assignee: str = MEMBER_ID) -> BudgetPlan:
    """Approved plan with every item assigned to ``assignee``, sent to members"""
    plan = approved_plan(engine)
    for item_id in plan.items:
        engine.assign_item(plan.id, item_id, assignee, HOD_USER)
    return engine.send_to_members(plan.id, HOD_USER)


def first_item_id(plan: BudgetPlan) -> str:
    return next(iter(plan.items))


ZERO = Decimal("0")
