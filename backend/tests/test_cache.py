"""Tests for the balance cache: states, invalidation, clearing and concurrency."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from pto_balances.exceptions import NotFoundError, StorageUnavailable
from pto_balances.models.enums import CacheState
from pto_balances.services.cache import BalanceCache
from pto_balances.services.notification import BalanceChangeNotifier
from pto_balances.services.policy import StaticPolicyProvider
from pto_balances.services.registry import build_services
from pto_balances.services.storage import (
    BALANCES_HEADER,
    BALANCES_TABLE,
    LEAVE_REQUESTS_HEADER,
    LEAVE_REQUESTS_TABLE,
    InMemoryTableStore,
)

if TYPE_CHECKING:
    from pto_balances.schemas.policy import AccrualPolicy
    from pto_balances.services.employee import EmployeeInfo, InMemoryEmployeeService
    from pto_balances.services.notification import InMemoryNotificationSender
    from pto_balances.services.registry import BalanceServices


class _CountingCalculator:
    """Wraps compute_balance to count calls and optionally hold them at a gate."""

    def __init__(self, services: BalanceServices, gate: asyncio.Event | None = None) -> None:
        self.calls = 0
        self.entered = asyncio.Event()
        self._gate = gate
        self._compute = services.calculator.compute_balance

    async def __call__(self, user_id: str, year: int, **kwargs: Any) -> Any:
        self.calls += 1
        self.entered.set()
        if self._gate is not None:
            await self._gate.wait()
        else:
            await asyncio.sleep(0.01)
        return await self._compute(user_id, year, **kwargs)


class _HeldAfterCompute:
    """Lets the first computation read the ledger, then holds its result at a gate."""

    def __init__(self, services: BalanceServices, gate: asyncio.Event) -> None:
        self.calls = 0
        self.entered = asyncio.Event()
        self._gate = gate
        self._compute = services.calculator.compute_balance

    async def __call__(self, user_id: str, year: int, **kwargs: Any) -> Any:
        self.calls += 1
        result = await self._compute(user_id, year, **kwargs)
        if self.calls == 1:
            self.entered.set()
            await self._gate.wait()
        return result


class _FlakyStore(InMemoryTableStore):
    """Fails the first N reads of the request ledger."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.ledger_reads = 0

    async def read_all(self, table: str) -> list[list[Any]]:
        if table == LEAVE_REQUESTS_TABLE:
            self.ledger_reads += 1
            if self.ledger_reads <= self.failures:
                msg = "connection reset"
                raise StorageUnavailable(msg)
        return await super().read_all(table)


class _UnreachableDirectory:
    async def get_employee(self, user_id: str) -> EmployeeInfo | None:
        msg = "Users table unavailable"
        raise StorageUnavailable(msg)

    async def list_employees(self) -> list[EmployeeInfo]:
        return []


def _add_request(store: InMemoryTableStore, request_id: str, hours: float, status: str = "Approved") -> None:
    store._tables[LEAVE_REQUESTS_TABLE].append(
        [request_id, "alice", "Vacation", "2024-08-05", "2024-08-05", hours, status]
    )


# ---------------------------------------------------------------------------
# get / peek
# ---------------------------------------------------------------------------


async def test_get_absent_computes_and_stores_fresh(services: BalanceServices) -> None:
    assert await services.cache.state("alice", 2024) == CacheState.ABSENT

    record = await services.cache.get("alice", 2024)

    assert record.total_hours == 60.0
    entry = await services.cache.peek("alice", 2024)
    assert entry is not None
    assert entry.state == CacheState.FRESH
    assert entry.record == record


async def test_get_fresh_does_not_recompute(services: BalanceServices, monkeypatch: pytest.MonkeyPatch) -> None:
    spy = _CountingCalculator(services)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    first = await services.cache.get("alice", 2024)
    second = await services.cache.get("alice", 2024)

    assert spy.calls == 1
    assert first == second


async def test_peek_never_computes(services: BalanceServices) -> None:
    assert await services.cache.peek("alice", 2024) is None
    assert not await services.cache.table_exists()


async def test_concurrent_gets_share_one_computation(
    services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    spy = _CountingCalculator(services)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    records = await asyncio.gather(*(services.cache.get("alice", 2024) for _ in range(10)))

    assert spy.calls == 1
    assert all(r == records[0] for r in records)


async def test_concurrent_gets_for_different_keys_run_separately(
    services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    spy = _CountingCalculator(services)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    await asyncio.gather(
        services.cache.get("alice", 2024),
        services.cache.get("alice", 2025),
        services.cache.get("bob", 2024),
    )

    assert spy.calls == 3


async def test_get_unknown_user_writes_nothing(services: BalanceServices) -> None:
    with pytest.raises(NotFoundError):
        await services.cache.get("zed", 2024)
    assert not await services.cache.table_exists()


async def test_cancelled_waiter_does_not_cancel_shared_computation(
    services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    gate = asyncio.Event()
    spy = _CountingCalculator(services, gate)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    first = asyncio.create_task(services.cache.get("alice", 2024))
    await spy.entered.wait()
    second = asyncio.create_task(services.cache.get("alice", 2024))
    await asyncio.sleep(0)
    first.cancel()
    gate.set()

    record = await second
    assert record.total_hours == 60.0
    assert spy.calls == 1


# ---------------------------------------------------------------------------
# invalidate
# ---------------------------------------------------------------------------


async def test_invalidate_then_get_reflects_ledger_change(
    store: InMemoryTableStore, services: BalanceServices
) -> None:
    assert (await services.cache.get("alice", 2024)).available_hours == 60.0

    _add_request(store, "r1", 8)
    assert (await services.cache.get("alice", 2024)).available_hours == 60.0

    assert await services.cache.invalidate("alice", 2024) == CacheState.STALE
    assert await services.cache.state("alice", 2024) == CacheState.STALE

    record = await services.cache.get("alice", 2024)
    assert record.available_hours == 52.0
    assert await services.cache.state("alice", 2024) == CacheState.FRESH


async def test_invalidate_remove_deletes_row(services: BalanceServices) -> None:
    await services.cache.get("alice", 2024)
    await services.cache.get("bob", 2024)

    assert await services.cache.invalidate("alice", 2024, remove=True) == CacheState.ABSENT

    assert await services.cache.peek("alice", 2024) is None
    assert await services.cache.state("bob", 2024) == CacheState.FRESH


async def test_invalidate_absent_key(services: BalanceServices) -> None:
    assert await services.cache.invalidate("alice", 2024) == CacheState.ABSENT
    assert await services.cache.invalidate("alice", 2024, remove=True) == CacheState.ABSENT


async def test_invalidate_marks_later_years_stale(services: BalanceServices) -> None:
    await services.cache.get("alice", 2024)
    await services.cache.get("alice", 2025)
    await services.cache.get("bob", 2025)

    await services.cache.invalidate("alice", 2024)

    assert await services.cache.state("alice", 2024) == CacheState.STALE
    assert await services.cache.state("alice", 2025) == CacheState.STALE
    assert await services.cache.state("bob", 2025) == CacheState.FRESH


async def test_invalidate_does_not_touch_earlier_years(services: BalanceServices) -> None:
    await services.cache.get("alice", 2024)
    await services.cache.get("alice", 2025)

    await services.cache.invalidate("alice", 2025)

    assert await services.cache.state("alice", 2024) == CacheState.FRESH


async def test_invalidation_during_computation_stores_stale(
    store: InMemoryTableStore, services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    gate = asyncio.Event()
    spy = _CountingCalculator(services, gate)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    pending = asyncio.create_task(services.cache.get("alice", 2024))
    await spy.entered.wait()
    _add_request(store, "r1", 8)
    await services.cache.invalidate("alice", 2024)
    gate.set()
    await pending

    assert await services.cache.state("alice", 2024) == CacheState.STALE

    record = await services.cache.get("alice", 2024)
    assert spy.calls == 2
    assert record.available_hours == 52.0
    assert await services.cache.state("alice", 2024) == CacheState.FRESH


async def test_get_after_invalidation_starts_fresh_computation(
    store: InMemoryTableStore, services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    gate = asyncio.Event()
    spy = _HeldAfterCompute(services, gate)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    superseded = asyncio.create_task(services.cache.get("alice", 2024))
    await spy.entered.wait()
    _add_request(store, "r1", 8)
    await services.cache.invalidate("alice", 2024)

    record = await services.cache.get("alice", 2024)

    assert spy.calls == 2
    assert record.used_hours == 8
    assert record.available_hours == 52.0

    gate.set()
    assert (await superseded).used_hours == 0
    assert (await services.cache.get("alice", 2024)).used_hours == 8


async def test_get_after_clear_starts_fresh_computation(
    store: InMemoryTableStore, services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    gate = asyncio.Event()
    spy = _HeldAfterCompute(services, gate)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    superseded = asyncio.create_task(services.cache.get("alice", 2024))
    await spy.entered.wait()
    _add_request(store, "r1", 8)
    await services.cache.clear_all()

    record = await services.cache.get("alice", 2024)

    assert record.used_hours == 8
    gate.set()
    await superseded


async def test_invalidation_reaches_later_year_in_flight(
    services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    gate = asyncio.Event()
    spy = _HeldAfterCompute(services, gate)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    pending = asyncio.create_task(services.cache.get("alice", 2025))
    await spy.entered.wait()
    await services.cache.invalidate("alice", 2024)
    gate.set()
    await pending

    assert await services.cache.state("alice", 2025) == CacheState.STALE


async def test_notification_failure_does_not_fail_get(
    store: InMemoryTableStore,
    services: BalanceServices,
    sender: InMemoryNotificationSender,
    caplog: pytest.LogCaptureFixture,
) -> None:
    notifier = BalanceChangeNotifier(sender, _UnreachableDirectory(), threshold_hours=1.0)
    cache = BalanceCache(store, services.calculator, notifier=notifier)
    await cache.get("alice", 2024)
    _add_request(store, "r1", 8)
    await cache.invalidate("alice", 2024)

    record = await cache.get("alice", 2024)

    assert record.available_hours == 52.0
    assert await cache.state("alice", 2024) == CacheState.FRESH
    assert "Balance change notification failed" in caplog.text
    assert sender.outbox == []


async def test_clear_during_computation_stores_stale(
    services: BalanceServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    gate = asyncio.Event()
    spy = _CountingCalculator(services, gate)
    monkeypatch.setattr(services.calculator, "compute_balance", spy)

    pending = asyncio.create_task(services.cache.get("alice", 2024))
    await spy.entered.wait()
    await services.cache.clear_all()
    gate.set()
    await pending

    assert await services.cache.state("alice", 2024) == CacheState.STALE


# ---------------------------------------------------------------------------
# clear_all / inspect
# ---------------------------------------------------------------------------


async def test_clear_all_is_idempotent(services: BalanceServices) -> None:
    await services.cache.get("alice", 2024)
    await services.cache.get("bob", 2024)

    first = await services.cache.clear_all()
    second = await services.cache.clear_all()

    assert first.removed == 2
    assert second.removed == 0
    assert await services.cache.peek("alice", 2024) is None


async def test_clear_all_absent_table(services: BalanceServices) -> None:
    assert (await services.cache.clear_all()).removed == 0


async def test_clear_all_keeps_header(store: InMemoryTableStore, services: BalanceServices) -> None:
    await services.cache.get("alice", 2024)
    await services.cache.clear_all()
    assert await store.read_all(BALANCES_TABLE) == [BALANCES_HEADER]


async def test_inspect_empty(store: InMemoryTableStore, services: BalanceServices) -> None:
    assert list(await services.cache.inspect()) == []
    store.seed(BALANCES_TABLE, BALANCES_HEADER)
    assert list(await services.cache.inspect()) == []


async def test_inspect_in_insertion_order_and_restartable(services: BalanceServices) -> None:
    await services.cache.get("bob", 2024)
    await services.cache.get("alice", 2024)
    await services.cache.get("alice", 2025)

    inspection = await services.cache.inspect()

    keys = [(r.user_id, r.year) for r in inspection]
    assert keys == [("bob", 2024), ("alice", 2024), ("alice", 2025)]
    assert [(r.user_id, r.year) for r in inspection] == keys
    assert inspection.row_count == 3


async def test_inspect_skips_malformed_rows(store: InMemoryTableStore, services: BalanceServices) -> None:
    await services.cache.get("alice", 2024)
    store._tables[BALANCES_TABLE].append(["bob", "not-a-year", 1, 1, 0, 0, "garbage", "Fresh"])

    entries = list((await services.cache.inspect()).entries())

    assert [e.record.user_id for e in entries] == ["alice"]


async def test_row_without_state_reads_as_fresh(store: InMemoryTableStore, services: BalanceServices) -> None:
    store.seed(
        BALANCES_TABLE,
        BALANCES_HEADER,
        [["alice", 2024, 60, 60, 0, 0, "2024-07-01T00:00:00+00:00"]],
    )
    assert await services.cache.state("alice", 2024) == CacheState.FRESH


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


async def test_transient_failure_retried_once(employees: InMemoryEmployeeService, policy: AccrualPolicy) -> None:
    store = _FlakyStore(failures=1)
    store.seed(LEAVE_REQUESTS_TABLE, LEAVE_REQUESTS_HEADER)
    services = build_services(store, StaticPolicyProvider(policy), employees=employees)

    record = await services.cache.get("alice", 2024)

    assert record.total_hours == 60.0
    assert store.ledger_reads == 2
    assert await services.cache.state("alice", 2024) == CacheState.FRESH


async def test_second_failure_propagates_and_writes_nothing(
    employees: InMemoryEmployeeService, policy: AccrualPolicy
) -> None:
    store = _FlakyStore(failures=2)
    store.seed(LEAVE_REQUESTS_TABLE, LEAVE_REQUESTS_HEADER)
    services = build_services(store, StaticPolicyProvider(policy), employees=employees)

    with pytest.raises(StorageUnavailable, match="connection reset"):
        await services.cache.get("alice", 2024)

    assert store.ledger_reads == 2
    assert await services.cache.state("alice", 2024) == CacheState.ABSENT
