# ruff: noqa: TC003
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from pto_balances.models.enums import CacheState
from pto_balances.schemas.policy import EntitlementBreakdown

# ---------------------------------------------------------------------------
# Balance records
# ---------------------------------------------------------------------------


class BalanceRecord(BaseModel):
    """Derived snapshot of an employee's leave standing for one year."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    year: int
    total_hours: float
    available_hours: float
    used_hours: float
    pending_hours: float
    computed_at: datetime


class BalanceInconsistency(BaseModel):
    """Over-allocation warning: more hours used or pending than entitled."""

    user_id: str
    year: int
    available_hours: float
    message: str

    @classmethod
    def for_record(cls, record: BalanceRecord) -> BalanceInconsistency | None:
        """Return a warning when the record's available hours are negative."""
        if record.available_hours >= 0:
            return None
        return cls(
            user_id=record.user_id,
            year=record.year,
            available_hours=record.available_hours,
            message=(
                f"User {record.user_id} is over-allocated by {-record.available_hours:g} hours in {record.year}"
            ),
        )


class BalanceComputation(BaseModel):
    """Result of a single balance calculation."""

    record: BalanceRecord
    entitlement: EntitlementBreakdown
    inconsistency: BalanceInconsistency | None = None


class CacheEntry(BaseModel):
    """A cached balance record together with its freshness."""

    record: BalanceRecord
    state: CacheState


# ---------------------------------------------------------------------------
# API response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Balance for a single user and year."""

    user_id: str
    year: int
    total_hours: float
    available_hours: float
    used_hours: float
    pending_hours: float
    computed_at: datetime
    inconsistency: BalanceInconsistency | None = None


class InvalidateResponse(BaseModel):
    """Cache state after an invalidation."""

    user_id: str
    year: int
    state: CacheState


class ClearResult(BaseModel):
    """Outcome of clearing the balance cache."""

    removed: int


class InitializeResponse(BaseModel):
    """Outcome of warming balances for every employee."""

    year: int
    count: int
    failed: int
    message: str
