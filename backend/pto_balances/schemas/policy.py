# ruff: noqa: TC003
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from pto_balances.models.enums import EmploymentType

# ---------------------------------------------------------------------------
# Policy settings
# ---------------------------------------------------------------------------


class CarryoverRules(BaseModel):
    """Year-end carryover configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    cap_hours: float | None = Field(default=None, ge=0)
    max_depth: int = Field(default=3, ge=0, le=50, description="How many prior years may be recomputed")


class AccrualPolicy(BaseModel):
    """Process-wide accrual rules, loaded once per calculation."""

    model_config = ConfigDict(frozen=True)

    rate_per_period: float = Field(ge=0, description="Hours accrued per month for full-time employees")
    part_time_rate_per_period: float | None = Field(default=None, ge=0)
    effective_date: date = date(2000, 1, 1)
    cap_hours: float | None = Field(default=None, ge=0)
    prorate_by_hire_date: bool = True
    split_cross_year_requests: bool = False
    carryover: CarryoverRules = Field(default_factory=CarryoverRules)

    def rate_for(self, employment_type: EmploymentType) -> float:
        """Monthly accrual rate for the given employment type."""
        if employment_type == EmploymentType.PART_TIME and self.part_time_rate_per_period is not None:
            return self.part_time_rate_per_period
        return self.rate_per_period


# ---------------------------------------------------------------------------
# Entitlement breakdown
# ---------------------------------------------------------------------------


class EntitlementBreakdown(BaseModel):
    """How a user's total hours for a year were derived."""

    user_id: str
    year: int
    employment_type: EmploymentType
    accrual_start: date | None
    months_active: int
    rate_per_period: float
    accrued_hours: float
    carryover_hours: float = 0.0
    cap_hours: float | None = None
    capped: bool = False
    total_hours: float
