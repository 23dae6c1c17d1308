# Overview: Append-only security event trail and the notifier observer that feeds it.

"""
Security Event Audit Trail

WHY: Immutable audit log for compliance and security monitoring. Logins,
failed attempts, authorization denials, role changes and MFA actions all
land in security_events.

DESIGN PRINCIPLES:
- Append-only: rows are never updated or deleted
- Log denials only: successful guard checks are not logged
- Notifier events are persisted by AuditTrailObserver, one row per event
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import SecurityEvent, User
from ..notifier import NotificationEvent
from pharmasys.time_utils import utcnow


logger = logging.getLogger(__name__)

# Notifier actions that describe a failure rather than a completed action
_FAILURE_ACTIONS = frozenset({"login_failed"})


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - LOGIN / LOGOUT / LOGIN_FAILED
    - PERMISSION_DENIED
    - MFA_REQUIRED
    - ROLE_CHANGE
    - MFA_VERIFIED, EMAIL_MFA_CODE_SENT, ...
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def list_security_events(
    *,
    user_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[SecurityEvent], int]:
    """Newest first. Returns (page, total)."""
    query = db.session.query(SecurityEvent)
    if user_id is not None:
        query = query.filter(SecurityEvent.user_id == user_id)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type.upper())

    total = query.count()
    events = (
        query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return events, total


class AuditTrailObserver:
    """
    Persists every notifier event as a SecurityEvent row.

    The event action becomes the upper-cased event_type ("login" -> LOGIN).
    Known metadata keys (ip, user_agent, resource) map onto columns; the
    rest is summarized into reason.
    """

    def update(self, event: NotificationEvent) -> None:
        meta = dict(event.metadata)
        ip_address = meta.pop("ip", None)
        user_agent = meta.pop("user_agent", None)
        resource = meta.pop("resource", None)

        user_id = meta.pop("user_id", None)
        if user_id is None:
            user = db.session.query(User).filter_by(username=event.subject_username).first()
            user_id = user.id if user else None

        reason = ", ".join(f"{key}={meta[key]}" for key in sorted(meta)) or None

        try:
            log_security_event(
                user_id=user_id,
                event_type=event.action.upper(),
                success=event.action not in _FAILURE_ACTIONS,
                resource=resource,
                action=event.subject_username,
                reason=reason,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except Exception:
            db.session.rollback()
            raise
