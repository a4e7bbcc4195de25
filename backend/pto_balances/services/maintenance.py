"""Operator commands over the balance cache.

Every command returns a MaintenanceResult; failures are reported, never raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pto_balances.exceptions import AppError
from pto_balances.schemas.balance import InitializeResponse
from pto_balances.schemas.maintenance import MaintenanceResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pto_balances.schemas.balance import CacheEntry
    from pto_balances.schemas.policy import EntitlementBreakdown
    from pto_balances.services.balance import BalanceCalculator
    from pto_balances.services.cache import BalanceCache
    from pto_balances.services.employee import EmployeeService

logger = logging.getLogger(__name__)

_RULE = "=" * 50


def format_inspection_report(entries: Iterable[CacheEntry]) -> str:
    """Render cached entries as the human-readable inspection report."""
    lines = ["PtoBalances Contents:", ""]
    for entry in entries:
        record = entry.record
        lines.extend(
            [
                f"User: {record.user_id}",
                f"  Year: {record.year}",
                f"  Total Hours: {record.total_hours:g}",
                f"  Available Hours: {record.available_hours:g}",
                f"  Used Hours: {record.used_hours:g}",
                f"  Pending Hours: {record.pending_hours:g}",
                f"  Computed At: {record.computed_at.isoformat()}",
                f"  State: {entry.state}",
                "",
            ]
        )
    return "\n".join(lines)


def format_entitlement_report(breakdown: EntitlementBreakdown) -> str:
    """Explain how an entitlement was derived."""
    lines = [
        "PTO Entitlement Debug Report",
        _RULE,
        f"User: {breakdown.user_id}",
        f"Year: {breakdown.year}",
        f"  Employment Type: {breakdown.employment_type}",
        f"  Accrual Start: {breakdown.accrual_start.isoformat() if breakdown.accrual_start else 'N/A'}",
        f"  Months Active: {breakdown.months_active}",
        f"  Rate (hours/month): {breakdown.rate_per_period:g}",
        f"  Accrued Hours: {breakdown.accrued_hours:g}",
        f"  Carryover Hours: {breakdown.carryover_hours:g}",
    ]
    if breakdown.cap_hours is not None:
        suffix = " (applied)" if breakdown.capped else ""
        lines.append(f"  Cap Hours: {breakdown.cap_hours:g}{suffix}")
    lines.append(f"  Total Hours: {breakdown.total_hours:g}")
    if breakdown.months_active < 12:
        lines.append(f"  Note: prorated to {breakdown.months_active} month(s)")
    lines.append(_RULE)
    return "\n".join(lines)


class CacheMaintenance:
    """Clear, inspect and warm the balance cache."""

    def __init__(self, cache: BalanceCache, calculator: BalanceCalculator, employees: EmployeeService) -> None:
        self._cache = cache
        self._calculator = calculator
        self._employees = employees

    async def clear_balances_cache(self) -> MaintenanceResult:
        """Delete every cached balance so the next request recalculates."""
        try:
            if not await self._cache.table_exists():
                message = "PtoBalances table does not exist - balances are calculated on demand."
                logger.info(message)
                return MaintenanceResult(success=True, message=message, report=message, removed=0)

            result = await self._cache.clear_all()
        except AppError as exc:
            logger.error("Error clearing balances cache: %s", exc.message)
            error = f"Error clearing balances cache: {exc.message}"
            return MaintenanceResult(success=False, error=error, report=error)

        if result.removed == 0:
            message = "PtoBalances table is already empty - no cached data to clear."
            report = message
        else:
            message = f"Cleared {result.removed} cached balance record(s)."
            report = f"{message}\n\nBalances will be recalculated the next time they are requested."
        return MaintenanceResult(success=True, message=message, report=report, removed=result.removed)

    async def inspect_balances_cache(self) -> MaintenanceResult:
        """List every cached balance record."""
        try:
            if not await self._cache.table_exists():
                message = "PtoBalances table does not exist - balances are calculated on demand."
                return MaintenanceResult(success=True, message=message, report=message)
            inspection = await self._cache.inspect()
        except AppError as exc:
            logger.error("Error inspecting balances cache: %s", exc.message)
            error = f"Error inspecting balances cache: {exc.message}"
            return MaintenanceResult(success=False, error=error, report=error)

        entries = list(inspection.entries())
        if not entries:
            message = "PtoBalances table is empty - fresh balances will be calculated on demand."
            return MaintenanceResult(success=True, message=message, report=message)

        message = f"Found {len(entries)} cached record(s)."
        report = format_inspection_report(entries)
        logger.info("%s\n%s", message, report)
        return MaintenanceResult(
            success=True,
            message=message,
            report=f"{message}\n\n{report}",
            records=[entry.record for entry in entries],
        )

    async def initialize_balances(self, year: int) -> InitializeResponse:
        """Compute and cache the balance of every employee for the year.

        A failure for one employee is logged and counted; the rest continue.
        """
        employees = await self._employees.list_employees()
        count = 0
        failed = 0
        for employee in employees:
            try:
                await self._cache.get(employee.id, year)
                count += 1
            except AppError:
                logger.exception("Failed to initialize balance for user=%s year=%d", employee.id, year)
                failed += 1

        return InitializeResponse(
            year=year,
            count=count,
            failed=failed,
            message=f"Initialized balances for {count} user(s)",
        )

    async def debug_entitlement(self, user_id: str, year: int) -> MaintenanceResult:
        """Explain a user's entitlement for the year."""
        try:
            computation = await self._calculator.compute_balance(user_id, year)
        except AppError as exc:
            return MaintenanceResult(success=False, error=exc.message, report=exc.message)

        report = format_entitlement_report(computation.entitlement)
        return MaintenanceResult(
            success=True,
            message=f"Entitlement for {user_id} in {year}: {computation.entitlement.total_hours:g} hours",
            report=report,
        )
