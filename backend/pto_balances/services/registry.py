"""Wires the balance engine's collaborators together."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pto_balances.config import get_settings
from pto_balances.services.accrual import AccrualEngine
from pto_balances.services.balance import BalanceCalculator
from pto_balances.services.cache import BalanceCache
from pto_balances.services.employee import TableEmployeeService
from pto_balances.services.ledger import LedgerReader
from pto_balances.services.maintenance import CacheMaintenance
from pto_balances.services.notification import BalanceChangeNotifier, InMemoryNotificationSender
from pto_balances.services.policy import SettingsPolicyProvider
from pto_balances.services.sql_storage import SqlTableStore
from pto_balances.services.storage import InMemoryTableStore

if TYPE_CHECKING:
    from pto_balances.config import Settings
    from pto_balances.services.employee import EmployeeService
    from pto_balances.services.notification import NotificationSender
    from pto_balances.services.policy import PolicyProvider
    from pto_balances.services.storage import TableStore


@dataclass
class BalanceServices:
    """The assembled engine: storage, directory, calculator, cache and operator commands."""

    store: TableStore
    employees: EmployeeService
    calculator: BalanceCalculator
    cache: BalanceCache
    maintenance: CacheMaintenance


def build_services(
    store: TableStore,
    policies: PolicyProvider,
    *,
    employees: EmployeeService | None = None,
    sender: NotificationSender | None = None,
    notify_threshold_hours: float | None = None,
) -> BalanceServices:
    """Assemble the engine around a store and a policy source."""
    if employees is None:
        employees = TableEmployeeService(store)

    ledger = LedgerReader(store, employees)
    calculator = BalanceCalculator(ledger, AccrualEngine(policies), employees)

    notifier = None
    if sender is not None and notify_threshold_hours is not None:
        notifier = BalanceChangeNotifier(sender, employees, notify_threshold_hours)

    cache = BalanceCache(store, calculator, notifier=notifier)
    return BalanceServices(
        store=store,
        employees=employees,
        calculator=calculator,
        cache=cache,
        maintenance=CacheMaintenance(cache, calculator, employees),
    )


def build_services_from_settings(settings: Settings) -> BalanceServices:
    """Assemble the engine as configured by the environment."""
    store: TableStore = SqlTableStore() if settings.storage_backend == "sql" else InMemoryTableStore()
    return build_services(
        store,
        SettingsPolicyProvider(settings),
        sender=InMemoryNotificationSender(),
        notify_threshold_hours=settings.notify_threshold_hours,
    )


_services: BalanceServices | None = None


def get_services() -> BalanceServices:
    """FastAPI dependency for the assembled engine."""
    global _services
    if _services is None:
        _services = build_services_from_settings(get_settings())
    return _services


def set_services(services: BalanceServices | None) -> None:
    """Override the engine (for testing or production wiring)."""
    global _services
    _services = services
