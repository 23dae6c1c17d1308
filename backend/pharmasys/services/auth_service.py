# Overview: Credential store operations: registration, login/logout, profile and role management.

"""
Authentication Service

WHY: Every action must be attributable. Users authenticate with a username
and password; a successful login opens a server-side session (see
session_service.py) and is announced on the event notifier.

SECURITY NOTES:
- Passwords hashed with bcrypt-pbkdf (see password_service.py)
- Unknown user, inactive user and wrong password share one error message
- Repeated failures lock the username (see login_throttle_service.py)
- There is no demo-account bypass: seeded users carry real hashes
- A password change revokes every other session of the user
"""

from __future__ import annotations

from ..errors import (
    AccountLocked,
    InvalidCredentials,
    NotFound,
    Unauthorized,
    ValidationError,
)
from ..extensions import db
from ..models import ROLES, SessionToken, User
from ..notifier import EventNotifier
from . import login_throttle_service, session_service
from .password_service import hash_password, validate_password_strength, verify_password
from pharmasys.time_utils import utcnow


SELF_REGISTER_ROLES = ("pharmacist", "doctor", "patient")
DEFAULT_ROLE = "pharmacist"

PROFILE_FIELDS = ("name", "email", "contact_number")


def _clean(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Expected a string value")
    value = value.strip()
    return value or None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def find_user(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()


def create_user(
    *,
    username: str,
    password: str,
    name: str,
    email: str,
    role: str = DEFAULT_ROLE,
    contact_number: str | None = None,
) -> User:
    """
    Create a user with a hashed password.

    Raises ValidationError for missing fields, an unknown role, a taken
    username, or a weak password (PasswordValidationError).
    """
    username = _clean(username)
    name = _clean(name)
    email = _clean(email)
    if not username or not name or not email:
        raise ValidationError("username, name and email are required")
    if "@" not in email:
        raise ValidationError("Invalid email address")
    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")

    validate_password_strength(password)

    if find_user(username) is not None:
        raise ValidationError("Username already exists")

    user = User(
        username=username,
        name=name,
        email=email,
        contact_number=_clean(contact_number),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def register(
    *,
    username: str,
    password: str,
    name: str,
    email: str,
    role: str | None = None,
    contact_number: str | None = None,
) -> User:
    """
    Self-registration.

    Only non-admin roles can be picked here; admins are created with
    `flask users create` or promoted by another admin.
    """
    role = role or DEFAULT_ROLE
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError(
            f"Invalid role. Must be one of: {', '.join(SELF_REGISTER_ROLES)}"
        )
    return create_user(
        username=username,
        password=password,
        name=name,
        email=email,
        role=role,
        contact_number=contact_number,
    )


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user whose password matches, else None.

    Does not record attempts or open a session; see login().
    """
    if not username or not password:
        return None

    user = find_user(username)
    if user is None or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    return user


def login(
    username: str,
    password: str,
    *,
    notifier: EventNotifier,
    ip_address: str | None = None,
    user_agent: str | None = None,
    timeout_hours: int = session_service.DEFAULT_TIMEOUT_HOURS,
) -> tuple[User, SessionToken, str]:
    """
    Authenticate and open a new session.

    Returns (user, session, plaintext_token). The new session always starts
    with mfa_verified=False.

    Raises AccountLocked while the username is throttled and
    InvalidCredentials for any authentication failure.
    """
    locked, seconds_remaining = login_throttle_service.is_account_locked(username)
    if locked:
        raise AccountLocked(retry_after_seconds=seconds_remaining)

    user = authenticate(username, password)
    if user is None:
        login_throttle_service.record_failed_attempt(
            username,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise InvalidCredentials()

    user.last_login_at = utcnow()
    session, token = session_service.create_session(
        user.id,
        user_agent=user_agent,
        ip_address=ip_address,
        timeout_hours=timeout_hours,
    )

    notifier.emit(
        user.username,
        "login",
        user_id=user.id,
        ip=ip_address,
        user_agent=user_agent,
        resource=login_throttle_service.LOGIN_RESOURCE,
    )
    return user, session, token


def logout(token: str | None, *, notifier: EventNotifier) -> bool:
    """
    Revoke the session bound to token.

    Unknown or already revoked tokens are a no-op (returns False, no event).
    """
    session = session_service.validate_session(token)
    if session is None:
        session_service.revoke_session(token)
        return False

    user = session.user
    session_service.revoke_session(token, reason="User logout")
    notifier.emit(user.username, "logout", user_id=user.id)
    return True


def current_user(token: str | None) -> User:
    """Raises Unauthorized when no valid session is bound to token."""
    session = session_service.validate_session(token)
    if session is None:
        raise Unauthorized()
    return session.user


def change_password(
    user: User,
    current_password: str,
    new_password: str,
    *,
    keep_session_id: int | None = None,
) -> int:
    """
    Replace the user's password and sign out every other session.

    Returns the number of sessions revoked.
    """
    if not verify_password(current_password or "", user.password_hash):
        raise InvalidCredentials("Current password is incorrect")

    validate_password_strength(new_password)

    user.password_hash = hash_password(new_password)
    db.session.commit()

    return session_service.revoke_all_user_sessions(
        user.id,
        reason="Password changed",
        except_session_id=keep_session_id,
    )


def update_profile(user: User, patch: dict) -> User:
    """Only name, email and contact_number are editable by the user."""
    if not isinstance(patch, dict):
        raise ValidationError("JSON object required")

    unknown = set(patch) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Field(s) not editable: {', '.join(sorted(unknown))}")

    for field in PROFILE_FIELDS:
        if field not in patch:
            continue
        value = _clean(patch[field])
        if field in ("name", "email") and not value:
            raise ValidationError(f"{field} cannot be empty")
        if field == "email" and "@" not in value:
            raise ValidationError("Invalid email address")
        setattr(user, field, value)

    db.session.commit()
    return user


def change_role(
    actor: User | None,
    user_id: int,
    new_role: str,
    *,
    notifier: EventNotifier,
) -> User:
    """
    Admin operation: set a user's role.

    The target's existing sessions stay valid; the new role applies on the
    next request because guards read the role from the user row.

    actor is None for operator changes made from the CLI.
    """
    if new_role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")

    user = get_user(user_id)
    old_role = user.role
    user.role = new_role
    db.session.commit()

    notifier.emit(
        user.username,
        "role_change",
        user_id=user.id,
        old_role=old_role,
        new_role=new_role,
        changed_by=actor.username if actor else "cli",
    )
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()
