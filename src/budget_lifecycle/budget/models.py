"""
Budget Domain Models - plans, items and evidence

A BudgetPlan is one department's proposal for one event. Its items live in
an ordered map keyed by item id and are mutated by key. Statuses are closed
enums, one per status family.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from budget_lifecycle.budget.audit import AuditEntry
from budget_lifecycle.kernel.errors import BudgetItemNotFound


class PlanStatus(str, Enum):
    """
    Budget plan lifecycle states

    draft → submitted → approved → sent_to_members
    with changes_requested as the review loop-back. locked has no entry path
    in the engine; it is set by tooling outside it.
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    SENT_TO_MEMBERS = "sent_to_members"
    LOCKED = "locked"


# Statuses reached only through an approving review
APPROVED_FAMILY = frozenset(
    {PlanStatus.APPROVED, PlanStatus.SENT_TO_MEMBERS, PlanStatus.LOCKED}
)


class ItemStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EvidenceType(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    DOC = "doc"
    LINK = "link"


class Evidence(BaseModel):
    """Attachment descriptor backing a planned or actual expense"""

    type: EvidenceType = EvidenceType.LINK
    url: str = ""
    name: str = ""


class BudgetItem(BaseModel):
    """
    Single line of a budget plan

    Attributes:
        item_id: Identifier unique within the plan
        category: Grouping label (defaults to "general")
        name: What is being bought
        unit, qty, unit_cost: Quantity breakdown
        total: Estimated cost, qty x unit_cost unless given explicitly
        note: Free-form note from the department
        status: Reviewer decision
        feedback: Reviewer comment
        evidence: Department-authored attachments
        assigned_to: Member id responsible for spending (after approval)
    """

    item_id: str
    category: str
    name: str
    unit: str
    qty: Decimal = Field(default=Decimal("1"), ge=0)
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(default=Decimal("0"), ge=0)
    note: str = ""
    status: ItemStatus = ItemStatus.PENDING
    feedback: str = ""
    evidence: list[Evidence] = Field(default_factory=list)
    assigned_to: str | None = None
    assigned_at: datetime | None = None
    assigned_by: str | None = None

    def computed_total(self) -> Decimal:
        return self.qty * self.unit_cost

    def ensure_total(self) -> None:
        """Fill total from qty x unit_cost when it was not supplied"""
        if self.total == 0:
            self.total = self.computed_total()

    model_config = {
        "validate_assignment": True,
        "json_schema_extra": {
            "examples": [
                {
                    "item_id": "item-001",
                    "category": "logistics",
                    "name": "Banner printing",
                    "unit": "cái",
                    "qty": "4",
                    "unit_cost": "250000",
                    "total": "1000000",
                    "status": "pending",
                }
            ]
        },
    }


class BudgetPlan(BaseModel):
    """
    One budget proposal of one department for one event

    ``version`` counts submissions. ``revision`` is the storage revision the
    plan was loaded at and is maintained by BudgetStore only.
    """

    id: str
    event_id: str
    department_id: str
    name: str
    currency: str
    status: PlanStatus = PlanStatus.DRAFT
    version: int = Field(default=1, ge=1)
    is_public: bool = False
    categories: list[str] = Field(default_factory=list)
    items: dict[str, BudgetItem] = Field(default_factory=dict)
    audit: list[AuditEntry] = Field(default_factory=list)

    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None  # first time the plan reached approved
    sent_to_members_at: datetime | None = None
    sent_to_members_by: str | None = None

    revision: int = 0

    def get_item(self, item_id: str) -> BudgetItem:
        """
        Raises:
            BudgetItemNotFound: If the plan has no such item
        """
        try:
            return self.items[item_id]
        except KeyError:
            raise BudgetItemNotFound(self.id, item_id) from None

    def total_cost(self) -> Decimal:
        return sum((item.total for item in self.items.values()), Decimal("0"))

    def unassigned_items(self) -> list[BudgetItem]:
        return [item for item in self.items.values() if item.assigned_to is None]
