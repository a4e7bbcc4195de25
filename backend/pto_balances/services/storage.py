"""Row-oriented table storage used for the request ledger, directory and balance cache.

Rows are lists of JSON-safe cells. Row 1 of every table is its header; data rows
start at row 2. Row indexes are 1-based.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pto_balances.exceptions import TableNotFoundError

if TYPE_CHECKING:
    from collections.abc import Sequence

LEAVE_REQUESTS_TABLE = "LeaveRequests"
BALANCES_TABLE = "PtoBalances"
USERS_TABLE = "Users"

LEAVE_REQUESTS_HEADER = ["id", "userId", "type", "startDate", "endDate", "hoursRequested", "status"]
BALANCES_HEADER = [
    "userId",
    "year",
    "totalHours",
    "availableHours",
    "usedHours",
    "pendingHours",
    "computedAt",
    "state",
]
USERS_HEADER = ["id", "name", "email", "employmentType", "hireDate", "terminationDate"]

HEADER_ROWS = 1


@runtime_checkable
class TableStore(Protocol):
    """Interface for the storage collaborator."""

    async def read_all(self, table: str) -> list[list[Any]]:
        """Return every row including the header. Raises TableNotFoundError if absent."""
        ...

    async def ensure_table(self, table: str, header: Sequence[str]) -> None:
        """Create the table with the given header row if it does not exist."""
        ...

    async def append_row(self, table: str, row: Sequence[Any]) -> int:
        """Append a data row and return its 1-based index."""
        ...

    async def upsert_row(self, table: str, row: Sequence[Any], *, key_columns: int = 1) -> int:
        """Replace the first data row whose leading key cells match, else append."""
        ...

    async def delete_rows(self, table: str, start_index: int, count: int) -> int:
        """Delete count rows starting at the 1-based start_index. Returns rows removed."""
        ...


def data_rows(rows: list[list[Any]]) -> list[list[Any]]:
    """Strip the header row."""
    return rows[HEADER_ROWS:]


def keys_match(row: Sequence[Any], candidate: Sequence[Any], key_columns: int) -> bool:
    """Compare the leading key cells of two rows, tolerating str/int cell drift."""
    if len(row) < key_columns or len(candidate) < key_columns:
        return False
    return all(str(row[i]) == str(candidate[i]) for i in range(key_columns))


class InMemoryTableStore:
    """In-memory table store for development and tests."""

    def __init__(self) -> None:
        self._tables: dict[str, list[list[Any]]] = {}

    def seed(self, table: str, header: Sequence[str], rows: Sequence[Sequence[Any]] = ()) -> None:
        """Create or replace a table with the given header and rows."""
        self._tables[table] = [list(header), *(list(r) for r in rows)]

    def drop(self, table: str) -> None:
        """Remove a table entirely."""
        self._tables.pop(table, None)

    def _table(self, table: str) -> list[list[Any]]:
        try:
            return self._tables[table]
        except KeyError:
            raise TableNotFoundError(table) from None

    async def read_all(self, table: str) -> list[list[Any]]:
        return copy.deepcopy(self._table(table))

    async def ensure_table(self, table: str, header: Sequence[str]) -> None:
        if table not in self._tables:
            self._tables[table] = [list(header)]

    async def append_row(self, table: str, row: Sequence[Any]) -> int:
        rows = self._table(table)
        rows.append(list(row))
        return len(rows)

    async def upsert_row(self, table: str, row: Sequence[Any], *, key_columns: int = 1) -> int:
        rows = self._table(table)
        for i in range(HEADER_ROWS, len(rows)):
            if keys_match(rows[i], row, key_columns):
                rows[i] = list(row)
                return i + 1
        rows.append(list(row))
        return len(rows)

    async def delete_rows(self, table: str, start_index: int, count: int) -> int:
        rows = self._table(table)
        if start_index <= HEADER_ROWS or count <= 0:
            return 0
        start = start_index - 1
        removed = len(rows[start : start + count])
        del rows[start : start + count]
        return removed
