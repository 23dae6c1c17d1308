# Overview: Flask API routes for TOTP and email-code multi-factor authentication.

"""
MFA API routes

Changing MFA settings (generate, toggle, email toggle) requires the session
to have passed MFA already when the account has a factor enabled, so a
stolen password alone cannot turn MFA off. Verification endpoints only
require a signed-in session.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_access, require_auth
from ..errors import PharmaSysError, ValidationError, error_response
from ..extensions import db, get_mailer, get_notifier
from ..services import mfa_service


mfa_bp = Blueprint("mfa", __name__, url_prefix="/api/mfa")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object required")
    return data


def _flag(data: dict, *keys: str) -> bool:
    for key in keys:
        if key in data:
            value = data[key]
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false")
            return value
    raise ValidationError(f"{keys[0]} is required")


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


@mfa_bp.get("/status")
@require_auth
def status_route():
    return jsonify(mfa_service.status(g.current_user, g.session_token)), 200


@mfa_bp.get("/generate")
@require_access(mfa=True)
def generate_route():
    """Start TOTP enrollment; returns the secret, otpauth URL and a QR code."""
    try:
        setup = mfa_service.generate_secret(
            g.current_user,
            issuer=current_app.config["MFA_ISSUER"],
            notifier=get_notifier(),
        )
        return jsonify(setup.to_dict()), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("generate MFA secret")


@mfa_bp.post("/verify")
@require_auth
def verify_route():
    try:
        data = _json_body()
        mfa_service.verify_totp(
            g.current_user,
            g.session_token,
            data.get("token", data.get("code")),
            valid_window=current_app.config["MFA_TOTP_VALID_WINDOW"],
            notifier=get_notifier(),
        )
        return jsonify({"success": True, "mfa_enabled": g.current_user.mfa_enabled}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("verify MFA token")


@mfa_bp.post("/toggle")
@require_access(mfa=True)
def toggle_route():
    """
    enabled=false disables TOTP and drops the secret.
    enabled=true only confirms an enrollment finished via /verify.
    """
    try:
        enabled = _flag(_json_body(), "enabled", "enable")
        if enabled:
            mfa_service.enable_totp(g.current_user)
        else:
            mfa_service.disable_totp(g.current_user, notifier=get_notifier())
        return jsonify({"success": True, "mfa_enabled": g.current_user.mfa_enabled}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("toggle MFA")


@mfa_bp.post("/email/toggle")
@require_access(mfa=True)
def email_toggle_route():
    try:
        enable = _flag(_json_body(), "enable", "enabled")
        mfa_service.set_email_mfa(g.current_user, enable, notifier=get_notifier())
        return jsonify({"success": True, "email_mfa_enabled": g.current_user.email_mfa_enabled}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("toggle email MFA")


@mfa_bp.post("/email/send")
@require_auth
def email_send_route():
    try:
        mfa_service.send_email_code(
            g.current_user,
            get_mailer(),
            ttl_minutes=current_app.config["EMAIL_MFA_CODE_TTL_MINUTES"],
            notifier=get_notifier(),
        )
        return jsonify({"success": True, "message": "Verification code sent"}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("send email MFA code")


@mfa_bp.post("/email/verify")
@require_auth
def email_verify_route():
    try:
        data = _json_body()
        mfa_service.verify_email_code(
            g.current_user,
            g.session_token,
            data.get("code", data.get("token")),
            notifier=get_notifier(),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"success": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("verify email MFA code")
