"""Balance cache: (user, year) -> last computed BalanceRecord, kept in the PtoBalances table.

Entries move Absent -> Fresh -> Stale -> Absent. Staleness is event driven:
whoever mutates the ledger calls ``invalidate``. There is no TTL.
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from pto_balances.exceptions import StorageUnavailable, TableNotFoundError
from pto_balances.models.enums import CacheState
from pto_balances.schemas.balance import BalanceRecord, CacheEntry, ClearResult
from pto_balances.services.storage import (
    BALANCES_HEADER,
    BALANCES_TABLE,
    HEADER_ROWS,
    data_rows,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from pto_balances.services.balance import BalanceCalculator
    from pto_balances.services.notification import BalanceChangeNotifier
    from pto_balances.services.storage import TableStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, int]

# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def record_to_row(record: BalanceRecord, state: CacheState) -> list[Any]:
    """Serialize a record into a PtoBalances row."""
    return [
        record.user_id,
        record.year,
        record.total_hours,
        record.available_hours,
        record.used_hours,
        record.pending_hours,
        record.computed_at.isoformat(),
        state.value,
    ]


def row_to_entry(row: list[Any]) -> CacheEntry:
    """Parse a PtoBalances row. Rows without a state column are treated as Fresh."""
    cells = dict(zip(BALANCES_HEADER, row, strict=False))
    record = BalanceRecord(
        user_id=str(cells["userId"]),
        year=int(cells["year"]),
        total_hours=cells["totalHours"],
        available_hours=cells["availableHours"],
        used_hours=cells["usedHours"],
        pending_hours=cells["pendingHours"],
        computed_at=datetime.fromisoformat(str(cells["computedAt"])),
    )
    return CacheEntry(record=record, state=CacheState(cells.get("state") or CacheState.FRESH))


def _row_key(row: list[Any]) -> CacheKey | None:
    if len(row) < 2:
        return None
    try:
        return str(row[0]), int(row[1])
    except (TypeError, ValueError):
        return None


class CacheInspection:
    """Lazy, restartable view over the cached rows in insertion order."""

    def __init__(self, rows: list[list[Any]]) -> None:
        self._rows = rows

    def entries(self) -> Iterator[CacheEntry]:
        for index, row in enumerate(self._rows, start=HEADER_ROWS + 1):
            try:
                yield row_to_entry(row)
            except (KeyError, TypeError, ValueError, ValidationError):
                logger.warning("Skipping malformed %s row %d", BALANCES_TABLE, index)

    def __iter__(self) -> Iterator[BalanceRecord]:
        return (entry.record for entry in self.entries())

    @property
    def row_count(self) -> int:
        return len(self._rows)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class BalanceCache:
    """Keyed balance cache with on-demand recomputation.

    Concurrent ``get`` calls for one key share a single in-flight computation.
    Writes, invalidations and clears are serialized by a lock, and every event
    is stamped from a logical clock: a computation that started before an
    invalidation of its key lands as Stale, so the later event wins.
    Ordering uses the logical clock, not computed_at wall time.

    Invalidation and clearing also detach superseded in-flight computations,
    so a get arriving afterwards starts a fresh one instead of joining them.
    """

    def __init__(
        self,
        store: TableStore,
        calculator: BalanceCalculator,
        *,
        notifier: BalanceChangeNotifier | None = None,
        retry_attempts: int = 1,
    ) -> None:
        self._store = store
        self._calculator = calculator
        self._notifier = notifier
        self._retry_attempts = retry_attempts
        self._inflight: dict[CacheKey, asyncio.Task[BalanceRecord]] = {}
        self._detached: set[asyncio.Task[BalanceRecord]] = set()
        self._write_lock = asyncio.Lock()
        self._clock = itertools.count(1)
        self._invalidated_at: dict[CacheKey, int] = {}
        self._cleared_at = 0
        calculator.snapshot_lookup = self._fresh_record

    @property
    def store(self) -> TableStore:
        return self._store

    # -- storage helpers ----------------------------------------------------

    async def _retrying(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run func, retrying transient storage failures."""
        attempt = 0
        while True:
            try:
                return await func()
            except TableNotFoundError:
                raise
            except StorageUnavailable as exc:
                if attempt >= self._retry_attempts:
                    raise
                attempt += 1
                logger.warning("Transient storage failure during %s, retrying (%d): %s", operation, attempt, exc)

    async def _read_rows(self) -> list[list[Any]]:
        try:
            rows = await self._store.read_all(BALANCES_TABLE)
        except TableNotFoundError:
            return []
        return data_rows(rows)

    async def _find(self, key: CacheKey) -> tuple[int, CacheEntry | None] | None:
        """Locate the row for key. Returns (row_index, entry) with entry None if unparseable."""
        for index, row in enumerate(await self._read_rows(), start=HEADER_ROWS + 1):
            if _row_key(row) != key:
                continue
            try:
                return index, row_to_entry(row)
            except (KeyError, TypeError, ValueError, ValidationError):
                logger.warning("Malformed %s row %d for user=%s year=%d", BALANCES_TABLE, index, *key)
                return index, None
        return None

    async def _write(self, record: BalanceRecord, state: CacheState) -> None:
        await self._store.ensure_table(BALANCES_TABLE, BALANCES_HEADER)
        await self._store.upsert_row(BALANCES_TABLE, record_to_row(record, state), key_columns=2)

    async def _fresh_record(self, user_id: str, year: int) -> BalanceRecord | None:
        entry = await self.peek(user_id, year)
        if entry is None or entry.state != CacheState.FRESH:
            return None
        return entry.record

    # -- read path ----------------------------------------------------------

    async def peek(self, user_id: str, year: int) -> CacheEntry | None:
        """Return the cached entry without computing anything."""
        found = await self._retrying("read", lambda: self._find((user_id, year)))
        if found is None:
            return None
        return found[1]

    async def state(self, user_id: str, year: int) -> CacheState:
        entry = await self.peek(user_id, year)
        return CacheState.ABSENT if entry is None else entry.state

    async def get(self, user_id: str, year: int) -> BalanceRecord:
        """Return the balance, computing and storing it when Absent or Stale."""
        key = (user_id, year)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._load(key))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug("Joining in-flight computation for user=%s year=%d", user_id, year)
        return await asyncio.shield(task)

    def _forget(self, key: CacheKey, task: asyncio.Task[BalanceRecord]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _detach(self, key: CacheKey) -> None:
        """Stop sharing a superseded computation; it still runs to completion and lands Stale."""
        task = self._inflight.pop(key)
        self._detached.add(task)
        task.add_done_callback(self._detached.discard)

    async def _load(self, key: CacheKey) -> BalanceRecord:
        user_id, year = key
        entry = await self.peek(user_id, year)
        if entry is not None and entry.state == CacheState.FRESH:
            logger.debug("Cache hit for user=%s year=%d", user_id, year)
            return entry.record

        logger.info(
            "Computing balance for user=%s year=%d (cache %s)",
            user_id,
            year,
            CacheState.ABSENT if entry is None else entry.state,
        )
        started_at = next(self._clock)
        computation = await self._retrying("compute", lambda: self._calculator.compute_balance(user_id, year))
        record = computation.record

        async with self._write_lock:
            invalidated_at = max(self._invalidated_at.get(key, 0), self._cleared_at)
            state = CacheState.STALE if invalidated_at > started_at else CacheState.FRESH
            await self._retrying("write", lambda: self._write(record, state))
        if state == CacheState.STALE:
            logger.info("Balance for user=%s year=%d was invalidated mid-computation; stored as stale", user_id, year)

        if self._notifier is not None and entry is not None:
            try:
                await self._notifier.balance_changed(entry.record, record)
            except Exception:
                logger.exception("Balance change notification failed for user=%s year=%d", user_id, year)

        return record

    # -- invalidation -------------------------------------------------------

    async def invalidate(self, user_id: str, year: int, *, remove: bool = False) -> CacheState:
        """Mark the entry Stale, or delete it when remove is set.

        Later years of the same user are marked Stale too, since carryover
        can flow into them. Returns the resulting state of the entry.
        """
        async with self._write_lock:
            stamp = next(self._clock)
            rows = await self._retrying("read", self._read_rows)

            target_index: int | None = None
            to_mark: list[BalanceRecord] = []
            for index, row in enumerate(rows, start=HEADER_ROWS + 1):
                row_key = _row_key(row)
                if row_key is None or row_key[0] != user_id or row_key[1] < year:
                    continue
                self._invalidated_at[row_key] = stamp
                if row_key[1] == year:
                    target_index = index
                    if remove:
                        continue
                try:
                    entry = row_to_entry(row)
                except (KeyError, TypeError, ValueError, ValidationError):
                    continue
                if entry.state == CacheState.FRESH:
                    to_mark.append(entry.record)
            self._invalidated_at[(user_id, year)] = stamp
            for key in list(self._inflight):
                if key[0] == user_id and key[1] >= year:
                    self._invalidated_at[key] = stamp
                    self._detach(key)

            for record in to_mark:
                await self._retrying("write", functools.partial(self._write, record, CacheState.STALE))

            if target_index is None:
                return CacheState.ABSENT
            if remove:
                await self._retrying(
                    "delete", functools.partial(self._store.delete_rows, BALANCES_TABLE, target_index, 1)
                )
                logger.info("Removed cached balance for user=%s year=%d", user_id, year)
                return CacheState.ABSENT

        logger.info("Invalidated cached balance for user=%s year=%d", user_id, year)
        return CacheState.STALE

    async def clear_all(self) -> ClearResult:
        """Remove every cached record. Idempotent; an absent table reports zero."""
        async with self._write_lock:
            self._cleared_at = next(self._clock)
            self._invalidated_at.clear()
            for key in list(self._inflight):
                self._detach(key)
            try:
                rows = await self._store.read_all(BALANCES_TABLE)
            except TableNotFoundError:
                return ClearResult(removed=0)
            count = len(rows) - HEADER_ROWS
            if count <= 0:
                return ClearResult(removed=0)
            removed = await self._store.delete_rows(BALANCES_TABLE, HEADER_ROWS + 1, count)
        logger.info("Cleared %d cached balance record(s)", removed)
        return ClearResult(removed=removed)

    async def inspect(self) -> CacheInspection:
        """Read-only view of every cached record. Empty when the table is empty or absent."""
        return CacheInspection(await self._read_rows())

    async def table_exists(self) -> bool:
        try:
            await self._store.read_all(BALANCES_TABLE)
        except TableNotFoundError:
            return False
        return True
