# ruff: noqa: TC001
"""Operator endpoints for the balance cache."""

from __future__ import annotations

from fastapi import APIRouter

from pto_balances.api.deps import ServicesDep
from pto_balances.schemas.maintenance import MaintenanceResult

admin_router = APIRouter(
    prefix="/admin/balances-cache",
    tags=["admin"],
)


@admin_router.delete("", response_model=MaintenanceResult)
async def clear_balances_cache(services: ServicesDep) -> MaintenanceResult:
    """Delete every cached balance; they are recalculated on the next request."""
    return await services.maintenance.clear_balances_cache()


@admin_router.get("", response_model=MaintenanceResult)
async def inspect_balances_cache(services: ServicesDep) -> MaintenanceResult:
    """List every cached balance record."""
    return await services.maintenance.inspect_balances_cache()
