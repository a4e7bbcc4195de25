# ruff: noqa: TC003
from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from pto_balances.exceptions import TableNotFoundError
from pto_balances.models.enums import EmploymentType
from pto_balances.services.storage import USERS_HEADER, USERS_TABLE, data_rows

if TYPE_CHECKING:
    from pto_balances.services.storage import TableStore

logger = logging.getLogger(__name__)


class EmployeeInfo(BaseModel):
    """Employee metadata from the employee directory."""

    id: str
    name: str = ""
    email: str = ""
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    hire_date: date | None = None
    termination_date: date | None = None


@runtime_checkable
class EmployeeService(Protocol):
    """Interface for the employee directory."""

    async def get_employee(self, user_id: str) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all employees."""
        ...


class InMemoryEmployeeService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[str, EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[employee.id] = employee

    async def get_employee(self, user_id: str) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get(user_id)

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all employees."""
        return list(self._employees.values())


def _row_to_employee(row: list[Any]) -> EmployeeInfo:
    cells = dict(zip(USERS_HEADER, row, strict=False))
    return EmployeeInfo(
        id=str(cells["id"]),
        name=cells.get("name") or "",
        email=cells.get("email") or "",
        employment_type=cells.get("employmentType") or EmploymentType.FULL_TIME,
        hire_date=cells.get("hireDate") or None,
        termination_date=cells.get("terminationDate") or None,
    )


def employee_to_row(employee: EmployeeInfo) -> list[Any]:
    """Serialize an employee into a Users table row."""
    return [
        employee.id,
        employee.name,
        employee.email,
        employee.employment_type.value,
        employee.hire_date.isoformat() if employee.hire_date else "",
        employee.termination_date.isoformat() if employee.termination_date else "",
    ]


class TableEmployeeService:
    """Employee directory read from the Users table of a table store."""

    def __init__(self, store: TableStore) -> None:
        self._store = store

    async def list_employees(self) -> list[EmployeeInfo]:
        try:
            rows = await self._store.read_all(USERS_TABLE)
        except TableNotFoundError:
            return []

        employees: list[EmployeeInfo] = []
        for index, row in enumerate(data_rows(rows), start=2):
            if not row or not row[0]:
                continue
            try:
                employees.append(_row_to_employee(row))
            except ValidationError:
                logger.warning("Skipping malformed Users row %d", index)
        return employees

    async def get_employee(self, user_id: str) -> EmployeeInfo | None:
        for employee in await self.list_employees():
            if employee.id == user_id:
                return employee
        return None
