from sqlmodel import SQLModel

from pto_balances.models.enums import CacheState, EmploymentType, LeaveType, RequestStatus
from pto_balances.models.table_row import TableRow

__all__ = [
    "CacheState",
    "EmploymentType",
    "LeaveType",
    "RequestStatus",
    "SQLModel",
    "TableRow",
]
