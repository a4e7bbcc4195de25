# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _now_utc() -> datetime:
    return datetime.now(UTC)


class TableRow(SQLModel, table=True):
    """One row of a logical table kept by the SQL table store.

    Position 1 is the header row of the logical table; data rows follow
    contiguously from position 2.
    """

    __tablename__ = "table_row"
    __table_args__ = (sa.Index("ix_table_row_table_position", "table_name", "position"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, sa_type=sa.Uuid)
    table_name: str = Field(max_length=255)
    position: int
    cells: list[Any] = Field(default_factory=list, sa_type=sa.JSON)
    updated_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
