from __future__ import annotations

import os
from datetime import date
from typing import TYPE_CHECKING

os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
from httpx import ASGITransport, AsyncClient

from pto_balances.main import app
from pto_balances.models.enums import EmploymentType
from pto_balances.schemas.policy import AccrualPolicy
from pto_balances.services.employee import EmployeeInfo, InMemoryEmployeeService
from pto_balances.services.notification import InMemoryNotificationSender
from pto_balances.services.policy import StaticPolicyProvider
from pto_balances.services.registry import build_services, set_services
from pto_balances.services.storage import LEAVE_REQUESTS_HEADER, LEAVE_REQUESTS_TABLE, InMemoryTableStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from pto_balances.services.registry import BalanceServices

ALICE = "alice"
BOB = "bob"


def _make_employee(
    user_id: str = ALICE,
    *,
    hire_date: date | None = date(2024, 7, 1),
    employment_type: EmploymentType = EmploymentType.FULL_TIME,
    termination_date: date | None = None,
) -> EmployeeInfo:
    return EmployeeInfo(
        id=user_id,
        name=user_id.title(),
        email=f"{user_id}@example.com",
        employment_type=employment_type,
        hire_date=hire_date,
        termination_date=termination_date,
    )


@pytest.fixture
def policy() -> AccrualPolicy:
    return AccrualPolicy(rate_per_period=10.0)


@pytest.fixture
def store() -> InMemoryTableStore:
    store = InMemoryTableStore()
    store.seed(LEAVE_REQUESTS_TABLE, LEAVE_REQUESTS_HEADER)
    return store


@pytest.fixture
def employees() -> InMemoryEmployeeService:
    """Alice joined 2024-07-01, Bob 2020-01-15; both full time."""
    svc = InMemoryEmployeeService()
    svc.seed(_make_employee(ALICE))
    svc.seed(_make_employee(BOB, hire_date=date(2020, 1, 15)))
    return svc


@pytest.fixture
def sender() -> InMemoryNotificationSender:
    return InMemoryNotificationSender()


@pytest.fixture
def services(
    store: InMemoryTableStore,
    employees: InMemoryEmployeeService,
    policy: AccrualPolicy,
    sender: InMemoryNotificationSender,
) -> BalanceServices:
    return build_services(
        store,
        StaticPolicyProvider(policy),
        employees=employees,
        sender=sender,
        notify_threshold_hours=8.0,
    )


@pytest.fixture
def installed_services(services: BalanceServices) -> Iterator[BalanceServices]:
    """Install the test services as the application's engine."""
    set_services(services)
    yield services
    set_services(None)


@pytest.fixture
async def async_client(installed_services: BalanceServices) -> AsyncIterator[AsyncClient]:
    """Async HTTP client backed by the in-memory services."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
