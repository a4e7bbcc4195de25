from fastapi import APIRouter

from pto_balances.api.admin import admin_router
from pto_balances.api.balances import balances_router, employee_balance_router

api_router = APIRouter()
api_router.include_router(employee_balance_router)
api_router.include_router(balances_router)
api_router.include_router(admin_router)
