"""
Budget Module Commands - caller payloads

Payloads accept both snake_case and camelCase keys (``unitCost`` or
``unit_cost``). Monetary fields and evidence stay loosely typed here and are
normalized by the invariants module, which turns bad values into
ValidationError with a readable message.
"""

from typing import Any, TypeVar

from pydantic import BaseModel, Field, StrictBool
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from budget_lifecycle.budget.models import ItemStatus
from budget_lifecycle.kernel.errors import ValidationError

PayloadT = TypeVar("PayloadT", bound=BaseModel)

PAYLOAD_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "extra": "ignore",
}


class ItemSpec(BaseModel):
    """One item as supplied by the department"""

    item_id: str | None = None
    category: str | None = None
    name: str | None = None
    unit: str | None = None
    qty: Any = None
    unit_cost: Any = None
    total: Any = None
    note: str | None = None
    status: ItemStatus | None = None
    feedback: str | None = None
    evidence: Any = None

    model_config = PAYLOAD_CONFIG


class CreateBudget(BaseModel):
    """
    Create a plan in draft

    ``items`` is validated separately so a non-list value produces the
    dedicated "items must be an array" message.
    """

    name: str | None = None
    currency: str | None = None
    categories: list[str] | None = None
    items: Any = None

    model_config = PAYLOAD_CONFIG


class UpdateBudget(BaseModel):
    """Replace any subset of name, currency, categories and items"""

    name: str | None = None
    currency: str | None = None
    categories: list[str] | None = None
    items: Any = None

    model_config = PAYLOAD_CONFIG


class ItemDecision(BaseModel):
    """Reviewer decision for one item"""

    item_id: str = Field(..., min_length=1)
    status: ItemStatus | None = None
    feedback: str | None = None

    model_config = PAYLOAD_CONFIG


class ReportExpense(BaseModel):
    """
    Member expense report

    Only fields present in the payload are applied; check ``model_fields_set``.
    """

    actual_amount: Any = None
    evidence: Any = None
    member_note: str | None = None
    is_paid: StrictBool | None = None

    model_config = PAYLOAD_CONFIG


def parse_payload(model: type[PayloadT], data: Any) -> PayloadT:
    """
    Validate a raw payload into a command model

    Args:
        model: Command model class
        data: Mapping or already-built model

    Returns:
        Validated command

    Raises:
        ValidationError: If the payload is not a mapping or fails validation
    """
    if isinstance(data, model):
        return data
    if not isinstance(data, dict):
        raise ValidationError(f"Payload for {model.__name__} must be an object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(f"Invalid {field or 'payload'}: {first['msg']}", field=field) from e
