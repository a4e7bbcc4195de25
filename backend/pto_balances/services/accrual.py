"""Accrual policy engine: yearly entitlement with proration, caps and carryover."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import TYPE_CHECKING

from pto_balances.models.enums import EmploymentType
from pto_balances.schemas.policy import AccrualPolicy, EntitlementBreakdown
from pto_balances.services.duration import round_hours

if TYPE_CHECKING:
    from pto_balances.services.policy import PolicyProvider

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = 12

# (user_id, prior_year, remaining_depth) -> prior year's available hours, or None if unknown.
PriorAvailableLookup = Callable[[str, int, int], Awaitable[float | None]]

# ---------------------------------------------------------------------------
# Pure computation helpers
# ---------------------------------------------------------------------------


def _resolve_accrual_start(hire_date: date | None, policy: AccrualPolicy) -> date:
    """Accrual begins at the later of the hire date and the policy effective date."""
    if hire_date is None:
        return policy.effective_date
    return max(hire_date, policy.effective_date)


def _months_active(
    year: int,
    accrual_start: date,
    termination_date: date | None,
    *,
    prorate: bool,
) -> int:
    """Number of months in the year that earn accrual.

    The start month and the termination month both count in full, so a
    July 1st hire earns six months in their first year.
    """
    if accrual_start.year > year:
        return 0
    if termination_date is not None and termination_date.year < year:
        return 0
    if not prorate:
        return MONTHS_PER_YEAR

    first_month = accrual_start.month if accrual_start.year == year else 1
    last_month = termination_date.month if termination_date is not None and termination_date.year == year else 12
    return max(0, last_month - first_month + 1)


def _apply_cap(total_hours: float, cap_hours: float | None) -> tuple[float, bool]:
    """Clamp the total to cap_hours. Returns (total, capped)."""
    if cap_hours is None or total_hours <= cap_hours:
        return total_hours, False
    return cap_hours, True


def _carryover_amount(prior_available: float | None, cap_hours: float | None) -> float:
    """Unused prior-year hours that roll into the next year."""
    if prior_available is None or prior_available <= 0:
        return 0.0
    if cap_hours is not None:
        return min(prior_available, cap_hours)
    return prior_available


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AccrualEngine:
    """Computes how many hours a user is entitled to in a year."""

    def __init__(self, policies: PolicyProvider) -> None:
        self._policies = policies

    def load_policy(self) -> AccrualPolicy:
        return self._policies.load_policy()

    async def compute_entitlement(
        self,
        user_id: str,
        year: int,
        hire_date: date | None,
        *,
        employment_type: EmploymentType = EmploymentType.FULL_TIME,
        termination_date: date | None = None,
        policy: AccrualPolicy | None = None,
        prior_available: PriorAvailableLookup | None = None,
        depth: int | None = None,
    ) -> EntitlementBreakdown:
        """Compute the entitlement breakdown for one user and year.

        Args:
            user_id: Employee identifier.
            year: Calendar year.
            hire_date: Employee hire date, if known.
            employment_type: Selects the full- or part-time accrual rate.
            termination_date: Accrual stops after this month.
            policy: Policy to use; loaded from the provider when omitted.
            prior_available: Resolves the prior year's unused hours for carryover.
            depth: Remaining prior years that may be recomputed for carryover;
                defaults to the policy's carryover max_depth.
        """
        if policy is None:
            policy = self.load_policy()

        accrual_start = _resolve_accrual_start(hire_date, policy)
        months = _months_active(year, accrual_start, termination_date, prorate=policy.prorate_by_hire_date)
        rate = policy.rate_for(employment_type)
        accrued = round_hours(rate * months)

        carryover = 0.0
        if policy.carryover.enabled and prior_available is not None and months > 0 and year > accrual_start.year:
            remaining = policy.carryover.max_depth if depth is None else depth
            if remaining <= 0:
                logger.debug("Carryover depth exhausted for user=%s year=%d", user_id, year)
            else:
                prior = await prior_available(user_id, year - 1, remaining - 1)
                carryover = round_hours(_carryover_amount(prior, policy.carryover.cap_hours))

        total, capped = _apply_cap(round_hours(accrued + carryover), policy.cap_hours)

        return EntitlementBreakdown(
            user_id=user_id,
            year=year,
            employment_type=employment_type,
            accrual_start=accrual_start,
            months_active=months,
            rate_per_period=rate,
            accrued_hours=accrued,
            carryover_hours=carryover,
            cap_hours=policy.cap_hours,
            capped=capped,
            total_hours=total,
        )
