from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pto_balances.exceptions import NotFoundError
from pto_balances.models.enums import RequestStatus
from pto_balances.schemas.balance import BalanceComputation, BalanceInconsistency, BalanceRecord
from pto_balances.services.duration import hours_in_year, round_hours

if TYPE_CHECKING:
    from pto_balances.schemas.policy import AccrualPolicy
    from pto_balances.schemas.request import LeaveRequest
    from pto_balances.services.accrual import AccrualEngine, PriorAvailableLookup
    from pto_balances.services.employee import EmployeeService
    from pto_balances.services.ledger import LedgerReader

logger = logging.getLogger(__name__)

# (user_id, year) -> a Fresh cached record, if one exists.
SnapshotLookup = Callable[[str, int], Awaitable[BalanceRecord | None]]


def _sum_hours(requests: list[LeaveRequest], year: int, *, split_cross_year: bool) -> tuple[float, float]:
    """Return (used, pending) hours attributed to the year.

    Rejected, cancelled and draft requests count toward neither.
    """
    used = 0.0
    pending = 0.0
    for request in requests:
        if request.status == RequestStatus.APPROVED:
            used += hours_in_year(request, year, split_cross_year=split_cross_year)
        elif request.status == RequestStatus.PENDING:
            pending += hours_in_year(request, year, split_cross_year=split_cross_year)
    return round_hours(used), round_hours(pending)


class BalanceCalculator:
    """Combines the accrual entitlement with the ledger into a BalanceRecord."""

    def __init__(
        self,
        ledger: LedgerReader,
        accrual: AccrualEngine,
        employees: EmployeeService,
        *,
        snapshot_lookup: SnapshotLookup | None = None,
    ) -> None:
        self._ledger = ledger
        self._accrual = accrual
        self._employees = employees
        self.snapshot_lookup = snapshot_lookup

    def _prior_available(self, policy: AccrualPolicy) -> PriorAvailableLookup:
        async def lookup(user_id: str, year: int, depth: int) -> float | None:
            if self.snapshot_lookup is not None:
                cached = await self.snapshot_lookup(user_id, year)
                if cached is not None:
                    return cached.available_hours
            prior = await self.compute_balance(user_id, year, policy=policy, depth=depth)
            return prior.record.available_hours

        return lookup

    async def compute_balance(
        self,
        user_id: str,
        year: int,
        *,
        policy: AccrualPolicy | None = None,
        depth: int | None = None,
    ) -> BalanceComputation:
        """Compute the balance for one user and year.

        Flow:
        1. Resolve the employee (NotFoundError if unknown)
        2. Load the policy once for the whole calculation
        3. Entitlement from the accrual engine (recursing for carryover)
        4. Used / pending hours from the ledger
        5. available = total - used - pending, flagged when negative
        """
        employee = await self._employees.get_employee(user_id)
        if employee is None:
            msg = f"User not found: {user_id}"
            raise NotFoundError(msg)

        if policy is None:
            policy = self._accrual.load_policy()

        entitlement = await self._accrual.compute_entitlement(
            user_id,
            year,
            employee.hire_date,
            employment_type=employee.employment_type,
            termination_date=employee.termination_date,
            policy=policy,
            prior_available=self._prior_available(policy),
            depth=depth,
        )

        requests = await self._ledger.fetch_requests(user_id, year, employee=employee)
        used, pending = _sum_hours(requests, year, split_cross_year=policy.split_cross_year_requests)

        total = entitlement.total_hours
        record = BalanceRecord(
            user_id=user_id,
            year=year,
            total_hours=total,
            available_hours=round_hours(total - used - pending),
            used_hours=used,
            pending_hours=pending,
            computed_at=datetime.now(UTC),
        )

        inconsistency = BalanceInconsistency.for_record(record)
        if inconsistency is not None:
            logger.warning("Balance inconsistency: %s", inconsistency.message)

        return BalanceComputation(record=record, entitlement=entitlement, inconsistency=inconsistency)
