from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmasys.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmasys.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Session cookie carrying the opaque session token
    AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME", "pharmasys_session")
    AUTH_COOKIE_SECURE = _env_bool("AUTH_COOKIE_SECURE", False)
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))

    # Multi-factor authentication
    MFA_ISSUER = os.environ.get("MFA_ISSUER", "PharmaSys")
    MFA_TOTP_VALID_WINDOW = int(os.environ.get("MFA_TOTP_VALID_WINDOW", "1"))
    EMAIL_MFA_CODE_TTL_MINUTES = int(os.environ.get("EMAIL_MFA_CODE_TTL_MINUTES", "10"))

    # "clamp": oversold lines floor stock at zero and are reported as warnings
    # "reject": oversold lines fail the whole sale with InsufficientStock
    STOCK_OVERSELL_POLICY = os.environ.get("STOCK_OVERSELL_POLICY", "clamp")

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }

    # Outgoing mail for email MFA codes. Without MAIL_SMTP_HOST, codes are
    # written to the application log (development only).
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", "587"))
    MAIL_SMTP_USER = os.environ.get("MAIL_SMTP_USER")
    MAIL_SMTP_PASSWORD = os.environ.get("MAIL_SMTP_PASSWORD")
    MAIL_SMTP_TLS = _env_bool("MAIL_SMTP_TLS", True)
    MAIL_FROM = os.environ.get("MAIL_FROM", "no-reply@pharmasys.local")
