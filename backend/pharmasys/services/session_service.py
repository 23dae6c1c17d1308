# Overview: Server-side session tokens: issue, validate, revoke, and per-session MFA state.

"""
Session Token Management Service

WHY: Secure session management with absolute timeout and revocation.
Tokens are cryptographically secure, hashed in the database, and time-limited.

STATE PER SESSION:
    Anonymous -> Authenticated -> (MFA-pending | Fully-Verified)

A freshly created session is always Authenticated with mfa_verified=False.
Only a successful TOTP/email verification inside that same session moves it
to Fully-Verified (mark_mfa_verified).

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS)
- Revocable on logout, password change, or account deactivation
- Tracks client IP and user agent for security monitoring
"""

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken
from pharmasys.time_utils import utcnow


DEFAULT_TIMEOUT_HOURS = 24
CLEANUP_RETENTION = timedelta(days=30)


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not a password KDF: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    timeout_hours: int = DEFAULT_TIMEOUT_HOURS,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        mfa_verified=False,
        created_at=now,
        last_used_at=now,
        expires_at=now + timedelta(hours=timeout_hours),
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str, now) -> None:
    session.is_revoked = True
    session.revoked_at = now
    session.revoked_reason = reason


def validate_session(token: str | None) -> SessionToken | None:
    """
    Validate session token and return the live SessionToken, or None.

    Returns None if:
    - Token is missing, unknown, expired, or revoked
    - User account is deactivated (the session is revoked on the spot)

    Updates last_used_at on successful validation (activity tracking).
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at <= now:
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated", now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return session


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if a live session was revoked, False if not found.
    """
    if not token:
        return False

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason, utcnow())
    db.session.commit()
    return True


def revoke_all_user_sessions(
    user_id: int,
    reason: str = "Revoke all sessions",
    except_session_id: int | None = None,
) -> int:
    """
    Revoke all active sessions for a user, optionally sparing one.

    Returns count of sessions revoked.
    """
    now = utcnow()
    query = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False)
    if except_session_id is not None:
        query = query.filter(SessionToken.id != except_session_id)

    count = 0
    for session in query.all():
        _revoke(session, reason, now)
        count += 1

    db.session.commit()
    return count


def mark_mfa_verified(session: SessionToken, factor: str) -> SessionToken:
    """
    Flag this session as having passed a second factor.

    Callers must only invoke this after the factor check succeeded; it is
    not persisted on the user, so other and future sessions stay unverified.
    """
    session.mfa_verified = True
    session.mfa_verified_at = utcnow()
    session.mfa_factor = factor
    db.session.commit()
    return session


def clear_mfa_verification(user_id: int, factor: str | None = None) -> int:
    """
    Reset mfa_verified on the user's sessions.

    With a factor, only sessions verified by that factor are reset; without
    one, every verified session of the user is.
    """
    query = db.session.query(SessionToken).filter_by(user_id=user_id, mfa_verified=True)
    if factor is not None:
        query = query.filter(SessionToken.mfa_factor == factor)

    sessions = query.all()
    for session in sessions:
        session.mfa_verified = False
        session.mfa_verified_at = None
        session.mfa_factor = None
    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions() -> int:
    """
    Delete expired and revoked sessions older than 30 days.

    Returns count of sessions deleted.

    Run periodically via `flask maintenance cleanup-sessions`.
    """
    now = utcnow()
    cutoff = now - CLEANUP_RETENTION

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked == True,  # noqa: E712
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
