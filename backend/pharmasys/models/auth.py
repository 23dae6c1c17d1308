from __future__ import annotations

from ..extensions import db
from pharmasys.time_utils import to_utc_z


ROLES = ("admin", "pharmacist", "doctor", "patient")


class User(db.Model):
    """
    User accounts for authentication and attribution.

    WHY: Every action must be attributable. No shared logins.

    MFA STATE:
    - mfa_secret is set when TOTP setup is initiated (GET /api/mfa/generate)
    - mfa_enabled flips to True only after the first successful TOTP verification
    - email_mfa_* fields hold the independent email-code factor; the pending
      code is stored as a SHA-256 digest, never in plaintext
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    contact_number = db.Column(db.String(64), nullable=True)

    # "<hex key>.<hex salt>" (see password_service)
    password_hash = db.Column(db.String(255), nullable=False)

    # One of ROLES
    role = db.Column(db.String(32), nullable=False, default="pharmacist")

    # TOTP factor
    mfa_enabled = db.Column(db.Boolean, nullable=False, default=False)
    mfa_secret = db.Column(db.String(64), nullable=True)

    # Email-code factor
    email_mfa_enabled = db.Column(db.Boolean, nullable=False, default=False)
    email_mfa_code_hash = db.Column(db.String(64), nullable=True)
    email_mfa_code_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    email_mfa_code_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def requires_mfa(self) -> bool:
        """True when any second factor is active for this account."""
        return bool(self.mfa_enabled or self.email_mfa_enabled)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        # Never expose password_hash, mfa_secret or the email code digest
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "contact_number": self.contact_number,
            "role": self.role,
            "mfa_enabled": self.mfa_enabled,
            "email_mfa_enabled": self.email_mfa_enabled,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Server-side session bound to an opaque token.

    WHY: Session identity with timeout and revocation support.
    Tokens are cryptographically secure random strings (32 bytes = 64 hex chars).

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - Revocable on logout or password change
    - mfa_verified starts False on every new session and is only set by a
      successful TOTP/email verification made within this session
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Second-factor state for this session only
    mfa_verified = db.Column(db.Boolean, nullable=False, default=False)
    mfa_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    mfa_factor = db.Column(db.String(16), nullable=True)  # "totp" | "email"

    # Session metadata
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Revocation support
    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "mfa_verified": self.mfa_verified,
            "mfa_factor": self.mfa_factor,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
