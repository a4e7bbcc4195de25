"""Ledger reader: leave requests for a user and year, read from the request table."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pto_balances.exceptions import NotFoundError, TableNotFoundError
from pto_balances.models.enums import REQUEST_STATUS_ALIASES, RequestStatus
from pto_balances.schemas.request import LeaveRequest
from pto_balances.services.storage import LEAVE_REQUESTS_HEADER, LEAVE_REQUESTS_TABLE, data_rows

if TYPE_CHECKING:
    from pto_balances.services.employee import EmployeeInfo, EmployeeService
    from pto_balances.services.storage import TableStore

logger = logging.getLogger(__name__)


def parse_status(value: Any) -> RequestStatus:
    """Map a stored status label onto a RequestStatus."""
    label = str(value).strip()
    if label in REQUEST_STATUS_ALIASES:
        return REQUEST_STATUS_ALIASES[label]
    return RequestStatus(label)


def row_to_request(row: list[Any]) -> LeaveRequest:
    """Convert a LeaveRequests table row into a LeaveRequest."""
    cells = dict(zip(LEAVE_REQUESTS_HEADER, row, strict=False))
    return LeaveRequest.model_validate(
        {
            "id": str(cells["id"]),
            "user_id": str(cells["userId"]),
            "type": cells.get("type") or "Vacation",
            "start_date": cells["startDate"],
            "end_date": cells.get("endDate") or cells["startDate"],
            "hours_requested": cells["hoursRequested"],
            "status": parse_status(cells["status"]),
        }
    )


def request_to_row(request: LeaveRequest) -> list[Any]:
    """Serialize a LeaveRequest into a LeaveRequests table row."""
    return [
        request.id,
        request.user_id,
        request.type.value,
        request.start_date.isoformat(),
        request.end_date.isoformat(),
        request.hours_requested,
        request.status.value,
    ]


class LedgerReader:
    """Read-only view over the leave request ledger."""

    def __init__(self, store: TableStore, employees: EmployeeService) -> None:
        self._store = store
        self._employees = employees

    async def fetch_requests(
        self, user_id: str, year: int, *, employee: EmployeeInfo | None = None
    ) -> list[LeaveRequest]:
        """Requests of the user whose date range intersects the year, by start date.

        Raises NotFoundError if the user is unknown to the employee directory.
        Callers that already resolved the employee pass it to skip the lookup.
        """
        if employee is None and await self._employees.get_employee(user_id) is None:
            msg = f"User not found: {user_id}"
            raise NotFoundError(msg)

        try:
            rows = await self._store.read_all(LEAVE_REQUESTS_TABLE)
        except TableNotFoundError:
            return []

        requests: list[LeaveRequest] = []
        for index, row in enumerate(data_rows(rows), start=2):
            if len(row) < 2 or str(row[1]) != user_id:
                continue
            try:
                request = row_to_request(row)
            except (KeyError, ValueError, ValidationError):
                logger.warning("Skipping malformed %s row %d", LEAVE_REQUESTS_TABLE, index)
                continue
            if request.intersects_year(year):
                requests.append(request)

        requests.sort(key=lambda r: r.start_date)
        return requests
