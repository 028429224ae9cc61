"""
Budget Module Invariants - pure normalization and validation

These functions never touch storage. They take plain values or in-memory
plans, normalize them, and raise ValidationError when a payload cannot be
made valid. The aggregate review rule and submit-time item normalization
live here so they can be tested item by item.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from budget_lifecycle.budget.commands import ItemDecision, ItemSpec, parse_payload
from budget_lifecycle.budget.models import (
    APPROVED_FAMILY,
    BudgetItem,
    BudgetPlan,
    Evidence,
    EvidenceType,
    ItemStatus,
    PlanStatus,
)
from budget_lifecycle.kernel.errors import BudgetItemNotFound, ValidationError
from budget_lifecycle.kernel.ids import generate_id, normalize_id
from budget_lifecycle.kernel.money import to_decimal
from budget_lifecycle.kernel.settings import EngineSettings

# =============================================================================
# Evidence
# =============================================================================


def sanitize_evidence(raw: Any) -> list[Evidence]:
    """
    Normalize an evidence payload into a list of Evidence

    Accepts None, a single entry, or a list of entries. Entries are mappings
    or Evidence instances; unknown types fall back to "link"; entries with
    neither url nor name are dropped.

    Raises:
        ValidationError: If the payload is not a list, mapping or None
    """
    if raw is None:
        return []
    if isinstance(raw, (dict, Evidence)):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValidationError("evidence must be an array", field="evidence")

    result: list[Evidence] = []
    for entry in raw:
        if isinstance(entry, Evidence):
            entry = entry.model_dump()
        if not isinstance(entry, Mapping):
            continue
        url = str(entry.get("url") or "").strip()
        name = str(entry.get("name") or "").strip()
        if not url and not name:
            continue
        raw_type = str(entry.get("type") or "").strip().lower()
        evidence_type = (
            EvidenceType(raw_type)
            if raw_type in {t.value for t in EvidenceType}
            else EvidenceType.LINK
        )
        result.append(Evidence(type=evidence_type, url=url, name=name))
    return result


# =============================================================================
# Items
# =============================================================================


def build_item(
    spec: ItemSpec,
    settings: EngineSettings,
    existing: BudgetItem | None = None,
) -> BudgetItem | None:
    """
    Build one normalized item from a payload entry

    Omitted fields fall back to the existing item (same item_id) or to the
    configured defaults. An item may carry ``approved`` only if the existing
    item was already approved by a review.

    Returns:
        The item, or None when it has no name after trimming
    """
    name = (spec.name if spec.name is not None else (existing.name if existing else "")).strip()
    if not name:
        return None

    category = (spec.category or (existing.category if existing else "")).strip()
    unit = (spec.unit or (existing.unit if existing else "")).strip()
    qty = to_decimal(spec.qty, "qty", existing.qty if existing else Decimal("1"))
    unit_cost = to_decimal(
        spec.unit_cost, "unitCost", existing.unit_cost if existing else Decimal("0")
    )
    explicit_total = to_decimal(spec.total, "total", Decimal("0"))
    if spec.total is None and spec.qty is None and spec.unit_cost is None and existing:
        explicit_total = existing.total

    status = spec.status or (existing.status if existing else ItemStatus.PENDING)
    if status == ItemStatus.APPROVED and not (
        existing is not None and existing.status == ItemStatus.APPROVED
    ):
        status = ItemStatus.PENDING

    item = BudgetItem(
        item_id=normalize_id(spec.item_id, "itemId") if spec.item_id else generate_id(),
        category=category or settings.default_category,
        name=name,
        unit=unit or settings.default_unit,
        qty=qty,
        unit_cost=unit_cost,
        total=explicit_total,
        note=(spec.note if spec.note is not None else (existing.note if existing else "")),
        status=status,
        feedback=(
            spec.feedback if spec.feedback is not None else (existing.feedback if existing else "")
        ),
        evidence=(
            sanitize_evidence(spec.evidence)
            if spec.evidence is not None
            else (list(existing.evidence) if existing else [])
        ),
        assigned_to=existing.assigned_to if existing else None,
        assigned_at=existing.assigned_at if existing else None,
        assigned_by=existing.assigned_by if existing else None,
    )
    item.ensure_total()
    return item


def normalize_items(
    raw_items: Any,
    settings: EngineSettings,
    existing: Mapping[str, BudgetItem] | None = None,
) -> dict[str, BudgetItem]:
    """
    Normalize an items payload into an ordered item map

    Args:
        raw_items: The ``items`` value from a create/update payload
        settings: Engine defaults
        existing: Current items, matched by item_id

    Returns:
        Map of item_id to item, in payload order

    Raises:
        ValidationError: If items is not a non-empty list, or no entry has a name
    """
    if not isinstance(raw_items, list):
        raise ValidationError("items must be an array", field="items")

    existing = existing or {}
    items: dict[str, BudgetItem] = {}
    for raw in raw_items:
        spec = parse_payload(ItemSpec, raw)
        previous = existing.get(spec.item_id) if spec.item_id else None
        item = build_item(spec, settings, previous)
        if item is None:
            continue
        if item.item_id in items:
            raise ValidationError(f"Duplicate itemId {item.item_id}", field="items")
        items[item.item_id] = item

    if not items:
        raise ValidationError("Budget must have at least one valid item", field="items")
    return items


def normalize_categories(raw: Iterable[Any] | None) -> list[str]:
    """
    Trim, drop blanks and de-duplicate categories, keeping first occurrence order

    Raises:
        ValidationError: If categories is not a list
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("categories must be an array", field="categories")
    seen: dict[str, None] = {}
    for value in raw:
        if not isinstance(value, str):
            continue
        category = value.strip()
        if category:
            seen.setdefault(category, None)
    return list(seen)


def categories_from_items(items: Mapping[str, BudgetItem]) -> list[str]:
    return normalize_categories([item.category for item in items.values()])


def validate_visibility_flag(value: Any) -> bool:
    """
    Raises:
        ValidationError: If value is not a real boolean
    """
    if not isinstance(value, bool):
        raise ValidationError("isPublic must be a boolean", field="isPublic")
    return value


# =============================================================================
# Review
# =============================================================================


def derive_plan_status(items: Iterable[BudgetItem]) -> PlanStatus:
    """
    Aggregate item decisions into a plan status

    Precedence:
    1. any rejected item → changes_requested (a single rejection dominates)
    2. all items approved → approved
    3. otherwise (some pending) → submitted
    """
    statuses = [item.status for item in items]
    if any(status == ItemStatus.REJECTED for status in statuses):
        return PlanStatus.CHANGES_REQUESTED
    if statuses and all(status == ItemStatus.APPROVED for status in statuses):
        return PlanStatus.APPROVED
    return PlanStatus.SUBMITTED


def parse_decisions(raw: Any) -> list[ItemDecision]:
    """
    Raises:
        ValidationError: If decisions are not a list of {itemId, status?, feedback?}
    """
    if not isinstance(raw, list):
        raise ValidationError("items must be an array", field="items")
    return [parse_payload(ItemDecision, entry) for entry in raw]


def merge_decisions(
    plan: BudgetPlan,
    decisions: list[ItemDecision],
    keep_omitted: bool,
) -> None:
    """
    Apply reviewer decisions to the plan's items in place

    Args:
        plan: Plan under review
        decisions: Decisions keyed by item_id
        keep_omitted: True for a saved draft (omitted fields keep their prior
            value); False for a completed review (omitted feedback becomes ""
            and omitted status becomes pending)

    Raises:
        BudgetItemNotFound: If a decision names an item not in the plan
    """
    for decision in decisions:
        if decision.item_id not in plan.items:
            raise BudgetItemNotFound(plan.id, decision.item_id)

    for decision in decisions:
        item = plan.items[decision.item_id]
        if keep_omitted:
            if decision.status is not None:
                item.status = decision.status
            if decision.feedback is not None:
                item.feedback = decision.feedback
        else:
            item.status = decision.status or ItemStatus.PENDING
            item.feedback = decision.feedback or ""


# =============================================================================
# Submit
# =============================================================================


def normalize_for_submit(plan: BudgetPlan) -> None:
    """
    Prepare items for (re)submission, in place

    - names and categories are trimmed, nameless items dropped, totals filled
    - from changes_requested: approved items keep status and feedback, every
      other item goes back to pending with feedback cleared
    - otherwise approved items are reset to pending unless the plan is in
      the approved family

    Raises:
        ValidationError: If no item with a name remains
    """
    resubmission = plan.status == PlanStatus.CHANGES_REQUESTED
    kept: dict[str, BudgetItem] = {}

    for item_id, item in plan.items.items():
        name = item.name.strip()
        if not name:
            continue
        item.name = name
        item.category = item.category.strip() or item.category
        item.ensure_total()

        if resubmission:
            if item.status != ItemStatus.APPROVED:
                item.status = ItemStatus.PENDING
                item.feedback = ""
        elif item.status == ItemStatus.APPROVED and plan.status not in APPROVED_FAMILY:
            item.status = ItemStatus.PENDING

        kept[item_id] = item

    if not kept:
        raise ValidationError("Budget must have at least one valid item", field="items")
    plan.items = kept
