# Overview: Synchronous publish/subscribe hook for authentication and stock events.

"""
Event Notifier

One EventNotifier is built by create_app() and handed to the services that
emit events (login, logout, role change, MFA lifecycle, low stock). There is
no module-level instance: callers always receive the notifier explicitly.

CONTRACT:
- Observers run synchronously, in registration order.
- An observer that raises is logged and skipped. The triggering operation has
  already succeeded and is never rolled back or failed because of it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from .time_utils import utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    subject_username: str
    action: str
    metadata: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


class Observer(Protocol):
    def update(self, event: NotificationEvent) -> None: ...


class EventNotifier:
    def __init__(self) -> None:
        self._observers: list[Observer] = []

    @property
    def observers(self) -> tuple[Observer, ...]:
        return tuple(self._observers)

    def subscribe(self, observer: Observer) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def notify(self, event: NotificationEvent) -> None:
        for observer in list(self._observers):
            try:
                observer.update(event)
            except Exception:
                logger.exception(
                    "Observer %s failed handling %s for %s",
                    type(observer).__name__,
                    event.action,
                    event.subject_username,
                )

    def emit(self, subject_username: str, action: str, **metadata) -> NotificationEvent:
        event = NotificationEvent(
            subject_username=subject_username,
            action=action,
            metadata=metadata,
        )
        self.notify(event)
        return event


MFA_ACTIONS = frozenset({
    "mfa_secret_generated",
    "mfa_enrolled",
    "mfa_verified",
    "mfa_disabled",
    "email_mfa_enabled",
    "email_mfa_disabled",
    "email_mfa_code_sent",
    "email_mfa_verified",
})


class LoginObserver:
    """Logs successful logins."""

    def update(self, event: NotificationEvent) -> None:
        if event.action != "login":
            return
        logger.info(
            "Login detected for user: %s with IP: %s",
            event.subject_username,
            event.metadata.get("ip", "unknown"),
        )


class MFAObserver:
    """Logs every MFA lifecycle action."""

    def update(self, event: NotificationEvent) -> None:
        if event.action not in MFA_ACTIONS:
            return
        logger.info("MFA action for user: %s, action: %s", event.subject_username, event.action)


class LowStockObserver:
    """Warns when a sale leaves a medicine at or below its reorder level."""

    def update(self, event: NotificationEvent) -> None:
        if event.action != "stock_low":
            return
        meta = event.metadata
        logger.warning(
            "Low stock: medicine %s (%s) at %s units, reorder level %s",
            meta.get("medicine_id"),
            meta.get("medicine_name"),
            meta.get("stock_quantity"),
            meta.get("reorder_level"),
        )
