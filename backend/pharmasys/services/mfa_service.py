# Overview: Second-factor engine: TOTP enrollment/verification and one-time email codes.

"""
MFA Engine

TOTP FACTOR:
    generate_secret -> (user scans QR) -> verify_totp
    The first successful verify_totp completes enrollment (mfa_enabled=True).
    enable_totp never enrolls on its own; it only confirms a completed
    enrollment.

EMAIL FACTOR:
    set_email_mfa(True) -> send_email_code -> verify_email_code
    Codes are six digits, single use, and expire after
    EMAIL_MFA_CODE_TTL_MINUTES. Expiry is checked at verification time.

SESSION STATE:
    Every successful verification marks the calling session mfa_verified and
    records which factor did it. Disabling or re-enrolling a factor clears
    mfa_verified on every session that factor verified; when a user ends up
    with no factor enabled, it is cleared on all of their sessions.

SECURITY NOTES:
- TOTP secrets are random base32 (pyotp.random_base32) and must stay
  recoverable to compute codes, so they are stored as-is
- Email codes are stored as a SHA-256 digest and compared in constant time
- Wrong, missing and expired codes share one error message
- A pending email code is discarded after MAX_EMAIL_CODE_ATTEMPTS wrong
  guesses (see login_throttle_service.py)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import io
import secrets
from dataclasses import dataclass
from datetime import timedelta

import pyotp
import qrcode
import qrcode.image.svg

from ..errors import EnrollmentIncomplete, InvalidCode, NotEnrolled
from ..extensions import db
from ..models import SessionToken, User
from ..notifier import EventNotifier
from . import login_throttle_service, session_service
from pharmasys.time_utils import utcnow


DEFAULT_ISSUER = "PharmaSys"
DEFAULT_VALID_WINDOW = 1
DEFAULT_EMAIL_CODE_TTL_MINUTES = 10
EMAIL_CODE_DIGITS = 6

FACTOR_TOTP = "totp"
FACTOR_EMAIL = "email"


@dataclass(frozen=True)
class MFASetup:
    secret: str
    otpauth_uri: str
    qrcode: str  # data:image/svg+xml;base64,...

    def to_dict(self) -> dict:
        return {
            "secret": self.secret,
            "otpauth_url": self.otpauth_uri,
            "qrcode": self.qrcode,
        }


def _qr_data_uri(data: str) -> str:
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def _after_factor_disabled(user: User, factor: str) -> None:
    if user.requires_mfa:
        session_service.clear_mfa_verification(user.id, factor)
    else:
        session_service.clear_mfa_verification(user.id)


def _emit(notifier: EventNotifier | None, user: User, action: str, **metadata) -> None:
    if notifier is not None:
        notifier.emit(user.username, action, user_id=user.id, **metadata)


def status(user: User, session: SessionToken | None) -> dict:
    return {
        "mfa_enabled": user.mfa_enabled,
        "email_mfa_enabled": user.email_mfa_enabled,
        "mfa_verified": bool(session and session.mfa_verified),
    }


# ---------------------------------------------------------------------------
# TOTP
# ---------------------------------------------------------------------------

def generate_secret(
    user: User,
    *,
    issuer: str = DEFAULT_ISSUER,
    notifier: EventNotifier | None = None,
) -> MFASetup:
    """
    Start (or restart) TOTP enrollment.

    Replaces any previous secret and resets mfa_enabled to False, so a code
    from the new secret must be verified before TOTP counts as a factor.
    """
    secret = pyotp.random_base32()
    uri = pyotp.TOTP(secret).provisioning_uri(name=user.username, issuer_name=issuer)

    user.mfa_secret = secret
    user.mfa_enabled = False
    db.session.commit()

    _after_factor_disabled(user, FACTOR_TOTP)
    _emit(notifier, user, "mfa_secret_generated")
    return MFASetup(secret=secret, otpauth_uri=uri, qrcode=_qr_data_uri(uri))


def verify_totp(
    user: User,
    session: SessionToken,
    code: str,
    *,
    valid_window: int = DEFAULT_VALID_WINDOW,
    notifier: EventNotifier | None = None,
) -> bool:
    """
    Check a TOTP code and mark the session verified.

    Raises NotEnrolled when no secret exists and InvalidCode on mismatch.
    """
    if not user.mfa_secret:
        raise NotEnrolled()

    code = str(code or "").strip().replace(" ", "")
    if not code.isdigit() or not pyotp.TOTP(user.mfa_secret).verify(code, valid_window=valid_window):
        raise InvalidCode()

    enrolled_now = not user.mfa_enabled
    if enrolled_now:
        user.mfa_enabled = True
        db.session.commit()

    session_service.mark_mfa_verified(session, FACTOR_TOTP)

    if enrolled_now:
        _emit(notifier, user, "mfa_enrolled")
    _emit(notifier, user, "mfa_verified", factor=FACTOR_TOTP)
    return True


def enable_totp(user: User) -> None:
    """No-op when enrollment is complete, else EnrollmentIncomplete."""
    if not (user.mfa_secret and user.mfa_enabled):
        raise EnrollmentIncomplete()


def disable_totp(user: User, *, notifier: EventNotifier | None = None) -> None:
    user.mfa_enabled = False
    user.mfa_secret = None
    db.session.commit()

    _after_factor_disabled(user, FACTOR_TOTP)
    _emit(notifier, user, "mfa_disabled")


# ---------------------------------------------------------------------------
# Email code
# ---------------------------------------------------------------------------

def _digest(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def _clear_pending_code(user: User) -> None:
    user.email_mfa_code_hash = None
    user.email_mfa_code_expires_at = None
    user.email_mfa_code_sent_at = None


def set_email_mfa(user: User, enable: bool, *, notifier: EventNotifier | None = None) -> None:
    user.email_mfa_enabled = bool(enable)
    if not enable:
        _clear_pending_code(user)
    db.session.commit()

    if enable:
        _emit(notifier, user, "email_mfa_enabled")
    else:
        _after_factor_disabled(user, FACTOR_EMAIL)
        _emit(notifier, user, "email_mfa_disabled")


def send_email_code(
    user: User,
    mailer,
    *,
    ttl_minutes: int = DEFAULT_EMAIL_CODE_TTL_MINUTES,
    notifier: EventNotifier | None = None,
) -> None:
    """
    Issue a fresh code, replacing any pending one, and deliver it by email.

    The code is committed before delivery; if delivery fails the error
    propagates and the user simply requests another code.
    """
    if not user.email_mfa_enabled:
        raise NotEnrolled("Email MFA is not enabled for this account")

    code = f"{secrets.randbelow(10 ** EMAIL_CODE_DIGITS):0{EMAIL_CODE_DIGITS}d}"
    user.email_mfa_code_hash = _digest(code)
    now = utcnow()
    user.email_mfa_code_sent_at = now
    user.email_mfa_code_expires_at = now + timedelta(minutes=ttl_minutes)
    db.session.commit()

    mailer.send(
        user.email,
        "Your PharmaSys verification code",
        f"Your verification code is {code}. It expires in {ttl_minutes} minutes.",
    )
    _emit(notifier, user, "email_mfa_code_sent")


def verify_email_code(
    user: User,
    session: SessionToken,
    code: str,
    *,
    notifier: EventNotifier | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """
    Consume the pending email code and mark the session verified.

    Raises NotEnrolled when the factor is off and InvalidCode when the code
    is wrong, missing or expired. Each wrong guess against a live code is
    recorded; the code is discarded once MAX_EMAIL_CODE_ATTEMPTS is reached.
    """
    if not user.email_mfa_enabled:
        raise NotEnrolled("Email MFA is not enabled for this account")

    code = str(code or "").strip()
    if not code or not user.email_mfa_code_hash or not user.email_mfa_code_expires_at:
        raise InvalidCode()

    if user.email_mfa_code_expires_at <= utcnow():
        raise InvalidCode()

    if not hmac.compare_digest(_digest(code), user.email_mfa_code_hash):
        failures = login_throttle_service.record_failed_email_code(
            user, ip_address=ip_address, user_agent=user_agent
        )
        if failures >= login_throttle_service.MAX_EMAIL_CODE_ATTEMPTS:
            _clear_pending_code(user)
            db.session.commit()
            raise InvalidCode("Too many failed attempts. Request a new code")
        raise InvalidCode()

    _clear_pending_code(user)
    db.session.commit()

    session_service.mark_mfa_verified(session, FACTOR_EMAIL)
    _emit(notifier, user, "email_mfa_verified", factor=FACTOR_EMAIL)
    return True
