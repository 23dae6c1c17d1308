# Overview: Brute-force protection for login and email MFA codes, backed by security_events.

"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many failures, the username is temporarily locked.

SECURITY FEATURES:
- Tracks failed attempts per username
- Lockout after MAX_FAILED_ATTEMPTS failures within LOCKOUT_WINDOW
- Lockout duration: LOCKOUT_DURATION minutes after the latest failure
- Uses the security_events table for tracking (LOGIN_FAILED rows)
- Wrong email MFA codes are counted the same way (EMAIL_MFA_FAILED rows);
  after MAX_EMAIL_CODE_ATTEMPTS the pending code is discarded
"""

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent, User
from .audit_service import log_security_event
from pharmasys.time_utils import utcnow


MAX_FAILED_ATTEMPTS = 10
LOCKOUT_WINDOW = timedelta(minutes=15)
LOCKOUT_DURATION = timedelta(minutes=15)

LOGIN_RESOURCE = "/api/login"
EMAIL_MFA_RESOURCE = "/api/mfa/email/verify"

MAX_EMAIL_CODE_ATTEMPTS = 5


def get_recent_failed_attempts(identifier: str) -> int:
    """
    Count failed login attempts for a username within LOCKOUT_WINDOW.

    The username is stored in the 'action' column of LOGIN_FAILED events.
    """
    cutoff = utcnow() - LOCKOUT_WINDOW

    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier,
        SecurityEvent.occurred_at >= cutoff,
    ).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Check if a username is currently locked due to too many failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(identifier) < MAX_FAILED_ATTEMPTS:
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.action == identifier,
    ).order_by(SecurityEvent.occurred_at.desc()).first()

    if most_recent:
        lockout_end = most_recent.occurred_at + LOCKOUT_DURATION
        now = utcnow()
        if now < lockout_end:
            return True, max(int((lockout_end - now).total_seconds()), 1)

    return False, None


def record_failed_attempt(
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials",
) -> int:
    """
    Record a failed login attempt.

    Returns the total number of recent failed attempts.
    """
    user = db.session.query(User).filter_by(username=identifier).first()

    log_security_event(
        user_id=user.id if user else None,
        event_type="LOGIN_FAILED",
        success=False,
        resource=LOGIN_RESOURCE,
        action=identifier,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return get_recent_failed_attempts(identifier)


def get_lockout_status(identifier: str) -> dict:
    """Lockout details for operators (`flask users list --lockouts`)."""
    failed_count = get_recent_failed_attempts(identifier)
    locked, seconds_remaining = is_account_locked(identifier)

    return {
        "locked": locked,
        "failed_attempts": failed_count,
        "max_attempts": MAX_FAILED_ATTEMPTS,
        "seconds_until_unlock": seconds_remaining,
    }


def get_failed_email_codes(user_id: int, since=None) -> int:
    """
    Count wrong email MFA codes entered by a user.

    since is normally the moment the pending code was sent, so every new
    code starts with a fresh allowance.
    """
    query = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "EMAIL_MFA_FAILED",
        SecurityEvent.user_id == user_id,
    )
    if since is not None:
        query = query.filter(SecurityEvent.occurred_at >= since)
    return query.count()


def record_failed_email_code(
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> int:
    """
    Record a wrong email MFA code.

    Returns the number of failures against the current pending code.
    """
    log_security_event(
        user_id=user.id,
        event_type="EMAIL_MFA_FAILED",
        success=False,
        resource=EMAIL_MFA_RESOURCE,
        action=user.username,
        reason="Invalid email code",
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return get_failed_email_codes(user.id, since=user.email_mfa_code_sent_at)
