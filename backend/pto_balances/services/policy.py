from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from pto_balances.exceptions import PolicyConfigError
from pto_balances.schemas.policy import AccrualPolicy

if TYPE_CHECKING:
    from pto_balances.config import Settings

_policy_adapter: TypeAdapter[AccrualPolicy] = TypeAdapter(AccrualPolicy)


@runtime_checkable
class PolicyProvider(Protocol):
    """Source of the accrual policy in force."""

    def load_policy(self) -> AccrualPolicy:
        """Return the current policy. Raises PolicyConfigError if malformed."""
        ...


def parse_policy(data: dict[str, Any]) -> AccrualPolicy:
    """Validate raw policy settings, raising PolicyConfigError on failure."""
    try:
        return _policy_adapter.validate_python(data)
    except ValidationError as exc:
        msg = f"Invalid accrual policy: {exc.error_count()} error(s): " + "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise PolicyConfigError(msg) from exc


class StaticPolicyProvider:
    """Serves a fixed policy, validated on every load."""

    def __init__(self, policy: AccrualPolicy | dict[str, Any]) -> None:
        self._policy = policy

    def load_policy(self) -> AccrualPolicy:
        if isinstance(self._policy, AccrualPolicy):
            return self._policy
        return parse_policy(self._policy)


class SettingsPolicyProvider:
    """Builds the policy from application settings."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def load_policy(self) -> AccrualPolicy:
        s = self._settings
        return parse_policy(
            {
                "rate_per_period": s.accrual_rate_hours_per_month,
                "part_time_rate_per_period": s.part_time_rate_hours_per_month,
                "effective_date": s.accrual_effective_date,
                "cap_hours": s.accrual_cap_hours,
                "prorate_by_hire_date": s.prorate_by_hire_date,
                "split_cross_year_requests": s.split_cross_year_requests,
                "carryover": {
                    "enabled": s.carryover_enabled,
                    "cap_hours": s.carryover_cap_hours,
                    "max_depth": s.carryover_max_depth,
                },
            }
        )
