# ruff: noqa: TC003
from __future__ import annotations

from datetime import date
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pto_balances.models.enums import LeaveType, RequestStatus


class LeaveRequest(BaseModel):
    """A leave request as recorded in the request ledger."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    type: LeaveType = LeaveType.VACATION
    start_date: date
    end_date: date
    hours_requested: float = Field(ge=0)
    status: RequestStatus

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self

    @property
    def year(self) -> int:
        """Year the request is booked against (its start date's year)."""
        return self.start_date.year

    def intersects_year(self, year: int) -> bool:
        return self.start_date.year <= year <= self.end_date.year
