from __future__ import annotations

from pydantic import BaseModel

from pto_balances.schemas.balance import BalanceRecord


class MaintenanceResult(BaseModel):
    """Machine-readable outcome of an operator command plus its report text."""

    success: bool
    message: str | None = None
    error: str | None = None
    report: str = ""
    removed: int | None = None
    records: list[BalanceRecord] = []
