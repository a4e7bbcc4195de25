# ruff: noqa: B008, TC001
from __future__ import annotations

from fastapi import APIRouter, Path, Query

from pto_balances.api.deps import ServicesDep
from pto_balances.schemas.balance import (
    BalanceInconsistency,
    BalanceResponse,
    InitializeResponse,
    InvalidateResponse,
)
from pto_balances.schemas.policy import EntitlementBreakdown

employee_balance_router = APIRouter(
    prefix="/employees/{user_id}",
    tags=["balances"],
)

balances_router = APIRouter(
    prefix="/balances",
    tags=["balances"],
)


@employee_balance_router.get("/balances/{year}", response_model=BalanceResponse)
async def get_balance(
    user_id: str,
    services: ServicesDep,
    year: int = Path(ge=1900, le=9999),
) -> BalanceResponse:
    """Get a user's balance for a year, computing it if the cache is absent or stale."""
    record = await services.cache.get(user_id, year)
    return BalanceResponse(
        **record.model_dump(),
        inconsistency=BalanceInconsistency.for_record(record),
    )


@employee_balance_router.post("/balances/{year}/invalidate", response_model=InvalidateResponse)
async def invalidate_balance(
    user_id: str,
    services: ServicesDep,
    year: int = Path(ge=1900, le=9999),
    remove: bool = Query(default=False),
) -> InvalidateResponse:
    """Mark a cached balance stale (or remove it) after a ledger change."""
    state = await services.cache.invalidate(user_id, year, remove=remove)
    return InvalidateResponse(user_id=user_id, year=year, state=state)


@employee_balance_router.get("/entitlement/{year}", response_model=EntitlementBreakdown)
async def get_entitlement(
    user_id: str,
    services: ServicesDep,
    year: int = Path(ge=1900, le=9999),
) -> EntitlementBreakdown:
    """Explain how a user's total hours for the year are derived."""
    computation = await services.calculator.compute_balance(user_id, year)
    return computation.entitlement


@balances_router.post("/initialize", response_model=InitializeResponse)
async def initialize_balances(
    services: ServicesDep,
    year: int = Query(ge=1900, le=9999),
) -> InitializeResponse:
    """Compute and cache balances for every employee in the directory."""
    return await services.maintenance.initialize_balances(year)
