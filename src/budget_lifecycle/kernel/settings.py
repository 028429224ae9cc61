"""
Engine settings

Tunable defaults for budget documents, listing pagination and concurrency
control. Settings are a plain pydantic model so they can be validated,
serialized and overridden from the environment.
"""

import os

from pydantic import BaseModel, Field


class EngineSettings(BaseModel):
    """
    Configuration for the budget lifecycle engine

    Defaults match the behavior departments already rely on: budgets are
    kept in VND, items default to one unit of the "general" category.
    """

    # Document defaults
    default_currency: str = Field(
        default="VND",
        min_length=1,
        description="Currency assigned to plans created without one",
    )
    default_unit: str = Field(
        default="cái",
        min_length=1,
        description="Unit assigned to items created without one",
    )
    default_category: str = Field(
        default="general",
        min_length=1,
        description="Category assigned to items created without one",
    )
    default_plan_name: str = Field(
        default="Budget Ban",
        min_length=1,
        description="Name used by tooling that creates plans without asking",
    )

    # Listings
    default_page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Page size used when a listing request gives none",
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        description="Upper bound for a listing page size",
    )

    # Concurrency
    optimistic_locking: bool = Field(
        default=True,
        description=(
            "Compare the stored revision before every write and raise ConflictRisk "
            "on mismatch. When disabled, the last writer wins."
        ),
    )

    # Logging
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, prefix: str = "BUDGET_") -> "EngineSettings":
        """
        Build settings from environment variables

        Each field maps to ``<prefix><FIELD_NAME>``, e.g. BUDGET_DEFAULT_CURRENCY.
        Unset variables keep their defaults.

        Args:
            prefix: Environment variable prefix

        Returns:
            Validated settings
        """
        overrides: dict[str, str] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None:
                overrides[name] = raw
        return cls.model_validate(overrides)
