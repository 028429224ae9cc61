"""
Tests for Budget Module Invariants - normalization and the aggregate rule

These tests exercise the pure functions directly, item by item, without a
database.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from budget_lifecycle.budget.commands import ItemDecision
from budget_lifecycle.budget.invariants import (
    categories_from_items,
    derive_plan_status,
    merge_decisions,
    normalize_categories,
    normalize_for_submit,
    normalize_items,
    parse_decisions,
    sanitize_evidence,
    validate_visibility_flag,
)
from budget_lifecycle.budget.models import (
    BudgetItem,
    BudgetPlan,
    EvidenceType,
    ItemStatus,
    PlanStatus,
)
from budget_lifecycle.kernel.errors import BudgetItemNotFound, ValidationError
from budget_lifecycle.kernel.settings import EngineSettings

T0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
SETTINGS = EngineSettings()


def item(item_id: str, status: ItemStatus = ItemStatus.PENDING, feedback: str = "", **kw) -> BudgetItem:
    fields = {"category": "general", "name": f"Item {item_id}", "unit": "cái"}
    fields.update(kw)
    return BudgetItem(item_id=item_id, status=status, feedback=feedback, **fields)


def plan_with(*items: BudgetItem, status: PlanStatus = PlanStatus.SUBMITTED) -> BudgetPlan:
    return BudgetPlan(
        id="plan-1",
        event_id="evt-1",
        department_id="dep-logistics",
        name="Plan",
        currency="VND",
        status=status,
        items={i.item_id: i for i in items},
        created_at=T0,
        updated_at=T0,
    )


# =============================================================================
# Evidence
# =============================================================================


class TestSanitizeEvidence:
    def test_none_is_empty(self) -> None:
        assert sanitize_evidence(None) == []

    def test_single_mapping_is_wrapped(self) -> None:
        result = sanitize_evidence({"type": "pdf", "url": "https://x/receipt.pdf", "name": "receipt"})
        assert len(result) == 1
        assert result[0].type == EvidenceType.PDF

    def test_empty_entries_are_dropped(self) -> None:
        """Entries with neither url nor name carry nothing and are removed"""
        result = sanitize_evidence(
            [
                {"type": "image", "url": "", "name": "  "},
                {"type": "image", "url": "https://x/a.png"},
                {"name": "paper receipt"},
                "not-an-entry",
            ]
        )
        assert [(e.url, e.name) for e in result] == [
            ("https://x/a.png", ""),
            ("", "paper receipt"),
        ]

    def test_unknown_type_falls_back_to_link(self) -> None:
        result = sanitize_evidence([{"type": "video", "url": "https://x/v"}])
        assert result[0].type == EvidenceType.LINK

    def test_non_list_payload_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="evidence must be an array"):
            sanitize_evidence("https://x/a.png")


# =============================================================================
# Items
# =============================================================================


class TestNormalizeItems:
    def test_total_is_computed_when_absent(self) -> None:
        items = normalize_items([{"name": "Banner", "qty": 2, "unitCost": "150000"}], SETTINGS)
        (banner,) = items.values()
        assert banner.total == Decimal("300000")
        assert banner.category == "general"
        assert banner.unit == "cái"
        assert banner.status == ItemStatus.PENDING

    def test_explicit_total_is_kept(self) -> None:
        items = normalize_items(
            [{"name": "Lump sum", "qty": 3, "unitCost": 10, "total": 25}], SETTINGS
        )
        assert next(iter(items.values())).total == Decimal("25")

    def test_snake_case_keys_are_accepted(self) -> None:
        items = normalize_items([{"item_id": "i1", "name": "Tape", "unit_cost": 5}], SETTINGS)
        assert items["i1"].unit_cost == Decimal("5")

    def test_nameless_items_are_skipped(self) -> None:
        items = normalize_items([{"name": "  "}, {"name": "Tape"}], SETTINGS)
        assert [i.name for i in items.values()] == ["Tape"]

    def test_no_valid_item_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least one valid item"):
            normalize_items([{"name": ""}, {"qty": 2}], SETTINGS)
        with pytest.raises(ValidationError, match="at least one valid item"):
            normalize_items([], SETTINGS)

    @pytest.mark.parametrize("raw", [None, "items", {"name": "x"}, 3])
    def test_non_array_items_are_rejected(self, raw: object) -> None:
        with pytest.raises(ValidationError, match="items must be an array"):
            normalize_items(raw, SETTINGS)

    def test_duplicate_item_ids_are_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate itemId"):
            normalize_items(
                [{"itemId": "i1", "name": "A"}, {"itemId": "i1", "name": "B"}], SETTINGS
            )

    def test_bad_money_is_a_validation_error(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_items([{"name": "A", "unitCost": "lots"}], SETTINGS)
        assert exc_info.value.field == "unitCost"

    def test_new_items_cannot_self_approve(self) -> None:
        """approved on a brand-new item is coerced back to pending"""
        items = normalize_items([{"itemId": "i1", "name": "A", "status": "approved"}], SETTINGS)
        assert items["i1"].status == ItemStatus.PENDING

    def test_existing_fields_survive_partial_update(self) -> None:
        """Matched by itemId, omitted fields keep their stored values"""
        existing = {
            "i1": item(
                "i1",
                ItemStatus.APPROVED,
                "looks good",
                qty=Decimal("2"),
                unit_cost=Decimal("10"),
                total=Decimal("999"),
                assigned_to="mem-an",
            )
        }
        items = normalize_items([{"itemId": "i1", "name": "Renamed"}], SETTINGS, existing)

        updated = items["i1"]
        assert updated.name == "Renamed"
        assert updated.total == Decimal("999")
        assert updated.status == ItemStatus.APPROVED
        assert updated.feedback == "looks good"
        assert updated.assigned_to == "mem-an"

    def test_changed_quantity_recomputes_total(self) -> None:
        existing = {"i1": item("i1", qty=Decimal("2"), unit_cost=Decimal("10"), total=Decimal("20"))}
        items = normalize_items([{"itemId": "i1", "qty": 5}], SETTINGS, existing)
        assert items["i1"].total == Decimal("50")


class TestCategoriesAndFlags:
    def test_normalize_categories(self) -> None:
        assert normalize_categories([" print ", "", "supplies", "print", 7, "  "]) == [
            "print",
            "supplies",
        ]
        assert normalize_categories(None) == []

    def test_categories_must_be_a_list(self) -> None:
        with pytest.raises(ValidationError):
            normalize_categories("print")  # type: ignore[arg-type]

    def test_categories_from_items(self) -> None:
        items = {
            "a": item("a", category="print"),
            "b": item("b", category="supplies"),
            "c": item("c", category="print"),
        }
        assert categories_from_items(items) == ["print", "supplies"]

    @pytest.mark.parametrize("value", ["true", 1, None, "false"])
    def test_visibility_flag_must_be_boolean(self, value: object) -> None:
        with pytest.raises(ValidationError, match="isPublic must be a boolean"):
            validate_visibility_flag(value)

    def test_visibility_flag_accepts_booleans(self) -> None:
        assert validate_visibility_flag(True) is True
        assert validate_visibility_flag(False) is False


# =============================================================================
# Aggregate rule
# =============================================================================


class TestDerivePlanStatus:
    def test_single_rejection_dominates(self) -> None:
        """Even a majority of approvals is downgraded by one rejection"""
        items = [
            item("a", ItemStatus.APPROVED),
            item("b", ItemStatus.APPROVED),
            item("c", ItemStatus.REJECTED),
        ]
        assert derive_plan_status(items) == PlanStatus.CHANGES_REQUESTED

    def test_all_approved(self) -> None:
        items = [item("a", ItemStatus.APPROVED), item("b", ItemStatus.APPROVED)]
        assert derive_plan_status(items) == PlanStatus.APPROVED

    def test_pending_keeps_submitted(self) -> None:
        items = [item("a", ItemStatus.APPROVED), item("b", ItemStatus.PENDING)]
        assert derive_plan_status(items) == PlanStatus.SUBMITTED


class TestMergeDecisions:
    def test_final_review_resets_omitted_fields(self) -> None:
        plan = plan_with(item("a", ItemStatus.REJECTED, "too expensive"))
        merge_decisions(plan, [ItemDecision(item_id="a")], keep_omitted=False)
        assert plan.items["a"].status == ItemStatus.PENDING
        assert plan.items["a"].feedback == ""

    def test_draft_review_keeps_omitted_fields(self) -> None:
        plan = plan_with(item("a", ItemStatus.REJECTED, "too expensive"))
        merge_decisions(plan, [ItemDecision(item_id="a", feedback="still too expensive")], True)
        assert plan.items["a"].status == ItemStatus.REJECTED
        assert plan.items["a"].feedback == "still too expensive"

    def test_unknown_item_fails_before_any_change(self) -> None:
        plan = plan_with(item("a"))
        decisions = [
            ItemDecision(item_id="a", status=ItemStatus.APPROVED),
            ItemDecision(item_id="ghost", status=ItemStatus.APPROVED),
        ]
        with pytest.raises(BudgetItemNotFound):
            merge_decisions(plan, decisions, keep_omitted=False)
        assert plan.items["a"].status == ItemStatus.PENDING

    def test_parse_decisions_validates_shape(self) -> None:
        parsed = parse_decisions([{"itemId": "a", "status": "rejected", "feedback": "no"}])
        assert parsed[0].status == ItemStatus.REJECTED

        with pytest.raises(ValidationError):
            parse_decisions({"itemId": "a"})
        with pytest.raises(ValidationError):
            parse_decisions([{"itemId": "a", "status": "maybe"}])
        with pytest.raises(ValidationError):
            parse_decisions(["a"])


# =============================================================================
# Submit normalization
# =============================================================================


class TestNormalizeForSubmit:
    def test_resubmission_keeps_only_approvals(self) -> None:
        """From changes_requested: approved keeps feedback, the rest reset"""
        plan = plan_with(
            item("a", ItemStatus.APPROVED, "fb"),
            item("b", ItemStatus.REJECTED, "fb2"),
            status=PlanStatus.CHANGES_REQUESTED,
        )
        normalize_for_submit(plan)

        assert (plan.items["a"].status, plan.items["a"].feedback) == (ItemStatus.APPROVED, "fb")
        assert (plan.items["b"].status, plan.items["b"].feedback) == (ItemStatus.PENDING, "")

    def test_draft_cannot_carry_approvals(self) -> None:
        plan = plan_with(item("a", ItemStatus.APPROVED), status=PlanStatus.DRAFT)
        normalize_for_submit(plan)
        assert plan.items["a"].status == ItemStatus.PENDING

    def test_draft_keeps_rejections_as_supplied(self) -> None:
        plan = plan_with(item("a", ItemStatus.REJECTED, "no"), status=PlanStatus.DRAFT)
        normalize_for_submit(plan)
        assert plan.items["a"].status == ItemStatus.REJECTED

    def test_names_are_trimmed_and_blank_items_dropped(self) -> None:
        plan = plan_with(item("a", name="  Banner  "), item("b", name="   "))
        normalize_for_submit(plan)
        assert list(plan.items) == ["a"]
        assert plan.items["a"].name == "Banner"

    def test_plan_without_named_items_cannot_be_submitted(self) -> None:
        plan = plan_with(item("a", name=" "))
        with pytest.raises(ValidationError, match="at least one valid item"):
            normalize_for_submit(plan)
        assert list(plan.items) == ["a"]
