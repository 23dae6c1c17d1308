"""
Event notifier tests.

Verifies:
- Observers run in registration order
- A failing observer never fails the emitting operation
- The default observer set writes the audit trail
"""

import logging

from pharmasys.extensions import db, get_notifier
from pharmasys.models import SecurityEvent
from pharmasys.notifier import (
    EventNotifier,
    LoginObserver,
    LowStockObserver,
    MFAObserver,
    NotificationEvent,
)
from pharmasys.services.audit_service import AuditTrailObserver

from conftest import login


class Recorder:
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def update(self, event):
        self.log.append((self.name, event.action))


class Exploding:
    def update(self, event):
        raise RuntimeError("observer down")


def test_observers_called_in_registration_order():
    log = []
    notifier = EventNotifier()
    notifier.subscribe(Recorder("first", log))
    notifier.subscribe(Recorder("second", log))

    event = notifier.emit("alice", "login", ip="10.0.0.1")

    assert log == [("first", "login"), ("second", "login")]
    assert isinstance(event, NotificationEvent)
    assert event.metadata == {"ip": "10.0.0.1"}


def test_subscribe_is_idempotent_and_unsubscribe_removes():
    log = []
    notifier = EventNotifier()
    recorder = Recorder("only", log)
    notifier.subscribe(recorder)
    notifier.subscribe(recorder)
    assert notifier.observers == (recorder,)

    notifier.unsubscribe(recorder)
    notifier.emit("alice", "logout")
    assert log == []


def test_failing_observer_is_logged_and_skipped(caplog):
    log = []
    notifier = EventNotifier()
    notifier.subscribe(Exploding())
    notifier.subscribe(Recorder("after", log))

    with caplog.at_level(logging.ERROR, logger="pharmasys.notifier"):
        notifier.emit("alice", "login")

    assert log == [("after", "login")]
    assert "Exploding" in caplog.text


def test_default_observer_order(app):
    kinds = [type(o) for o in get_notifier().observers]
    assert kinds == [LoginObserver, MFAObserver, AuditTrailObserver, LowStockObserver]


def test_login_observer_logs_ip(caplog):
    with caplog.at_level(logging.INFO, logger="pharmasys.notifier"):
        LoginObserver().update(NotificationEvent("alice", "login", {"ip": "10.1.2.3"}))
        LoginObserver().update(NotificationEvent("alice", "logout", {}))
    assert "Login detected for user: alice with IP: 10.1.2.3" in caplog.text
    assert caplog.text.count("Login detected") == 1


def test_mfa_observer_ignores_other_actions(caplog):
    with caplog.at_level(logging.INFO, logger="pharmasys.notifier"):
        MFAObserver().update(NotificationEvent("alice", "mfa_enrolled", {}))
        MFAObserver().update(NotificationEvent("alice", "login", {}))
    assert "MFA action for user: alice, action: mfa_enrolled" in caplog.text
    assert caplog.text.count("MFA action") == 1


def test_login_succeeds_when_observer_fails(app, client, pharmacist_user):
    notifier = get_notifier()
    broken = Exploding()
    notifier.subscribe(broken)
    try:
        resp = login(client, "pharma")
    finally:
        notifier.unsubscribe(broken)

    assert resp.status_code == 200
    assert resp.get_json()["token"]
    # Observers registered before the failing one still ran
    assert db.session.query(SecurityEvent).filter_by(event_type="LOGIN").count() == 1


def test_audit_observer_maps_metadata(db_session, pharmacist_user):
    AuditTrailObserver().update(NotificationEvent(
        "pharma",
        "mfa_verified",
        {"factor": "totp", "ip": "10.9.9.9"},
    ))
    event = db.session.query(SecurityEvent).filter_by(event_type="MFA_VERIFIED").one()
    assert event.user_id == pharmacist_user.id
    assert event.ip_address == "10.9.9.9"
    assert event.reason == "factor=totp"
    assert event.action == "pharma"
    assert event.success is True
