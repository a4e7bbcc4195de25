"""Table store backed by the ``table_row`` SQL table."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from pto_balances.db import get_session_factory
from pto_balances.exceptions import StorageUnavailable, TableNotFoundError
from pto_balances.models.table_row import TableRow
from pto_balances.services.storage import HEADER_ROWS, keys_match

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class SqlTableStore:
    """Keeps every logical table as positioned rows in one SQL table.

    Each operation runs in its own transaction, so a failed write leaves
    nothing behind.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str, table: str) -> AsyncIterator[AsyncSession]:
        factory = self._session_factory or get_session_factory()
        try:
            async with factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Storage %s failed for table=%s: %s", operation, table, exc)
            msg = f"Storage {operation} failed for table {table}"
            raise StorageUnavailable(msg) from exc

    @staticmethod
    async def _rows(session: AsyncSession, table: str) -> list[TableRow]:
        result = await session.execute(
            select(TableRow).where(col(TableRow.table_name) == table).order_by(col(TableRow.position))
        )
        return list(result.scalars().all())

    async def read_all(self, table: str) -> list[list[Any]]:
        async with self._session("read", table) as session:
            rows = await self._rows(session, table)
        if not rows:
            raise TableNotFoundError(table)
        return [list(r.cells) for r in rows]

    async def ensure_table(self, table: str, header: Sequence[str]) -> None:
        async with self._session("create", table) as session:
            rows = await self._rows(session, table)
            if rows:
                return
            session.add(TableRow(table_name=table, position=1, cells=list(header)))
            await session.commit()

    async def append_row(self, table: str, row: Sequence[Any]) -> int:
        async with self._session("append", table) as session:
            rows = await self._rows(session, table)
            if not rows:
                raise TableNotFoundError(table)
            position = rows[-1].position + 1
            session.add(TableRow(table_name=table, position=position, cells=list(row)))
            await session.commit()
        return position

    async def upsert_row(self, table: str, row: Sequence[Any], *, key_columns: int = 1) -> int:
        async with self._session("upsert", table) as session:
            rows = await self._rows(session, table)
            if not rows:
                raise TableNotFoundError(table)
            for existing in rows[HEADER_ROWS:]:
                if keys_match(existing.cells, row, key_columns):
                    existing.cells = list(row)
                    existing.updated_at = datetime.now(UTC)
                    await session.commit()
                    return existing.position
            position = rows[-1].position + 1
            session.add(TableRow(table_name=table, position=position, cells=list(row)))
            await session.commit()
        return position

    async def delete_rows(self, table: str, start_index: int, count: int) -> int:
        if start_index <= HEADER_ROWS or count <= 0:
            return 0
        end_index = start_index + count
        async with self._session("delete", table) as session:
            rows = await self._rows(session, table)
            if not rows:
                raise TableNotFoundError(table)
            removed = sum(1 for r in rows if start_index <= r.position < end_index)
            if removed == 0:
                return 0
            await session.execute(
                delete(TableRow).where(
                    col(TableRow.table_name) == table,
                    col(TableRow.position) >= start_index,
                    col(TableRow.position) < end_index,
                )
            )
            await session.execute(
                update(TableRow)
                .where(col(TableRow.table_name) == table, col(TableRow.position) >= end_index)
                .values(position=col(TableRow.position) - removed)
            )
            await session.commit()
        return removed
