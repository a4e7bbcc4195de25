from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pto_balances.schemas.balance import BalanceRecord
    from pto_balances.services.employee import EmployeeService

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    """Interface for the email delivery collaborator."""

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Deliver one email."""
        ...


@dataclass
class SentEmail:
    to: str
    subject: str
    body: str


class InMemoryNotificationSender:
    """Records emails instead of delivering them."""

    def __init__(self) -> None:
        self.outbox: list[SentEmail] = []

    async def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info("Queued email to=%s subject=%r", to, subject)
        self.outbox.append(SentEmail(to=to, subject=subject, body=body))


class BalanceChangeNotifier:
    """Emails an employee when a recomputation moves their available hours materially."""

    def __init__(self, sender: NotificationSender, employees: EmployeeService, threshold_hours: float) -> None:
        self._sender = sender
        self._employees = employees
        self._threshold = threshold_hours

    async def balance_changed(self, previous: BalanceRecord | None, current: BalanceRecord) -> bool:
        """Notify if available hours changed by at least the threshold. Returns True if sent."""
        if previous is None:
            return False
        delta = current.available_hours - previous.available_hours
        if abs(delta) < self._threshold:
            return False

        employee = await self._employees.get_employee(current.user_id)
        if employee is None or not employee.email:
            return False

        subject = f"Your {current.year} PTO balance has changed"
        body = (
            f"Hi {employee.name or employee.id},\n\n"
            f"Your available PTO for {current.year} is now {current.available_hours:g} hours "
            f"(was {previous.available_hours:g}).\n"
            f"Total: {current.total_hours:g}  Used: {current.used_hours:g}  Pending: {current.pending_hours:g}\n"
        )
        try:
            await self._sender.send_email(employee.email, subject, body)
        except Exception:
            logger.exception("Failed to send balance change email to user=%s", current.user_id)
            return False
        return True
