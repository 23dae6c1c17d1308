# Overview: Flask API routes for registration, login/logout and the signed-in user's profile.

"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and password change
- Login throttling with temporary lockout (429)
- Opaque session token in an HttpOnly cookie (also returned for Bearer use)
- Password change signs out every other session
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import get_request_token, require_auth
from ..errors import PharmaSysError, ValidationError, error_response
from ..extensions import db, get_notifier
from ..services import auth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


def _client_info() -> tuple[str | None, str | None]:
    return request.remote_addr, request.headers.get("User-Agent")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object required")
    return data


def _set_session_cookie(response, token: str, session) -> None:
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        expires=session.expires_at,
        httponly=True,
        secure=current_app.config["AUTH_COOKIE_SECURE"],
        samesite="Lax",
    )


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


def _open_session(username: str, password: str):
    ip_address, user_agent = _client_info()
    return auth_service.login(
        username,
        password,
        notifier=get_notifier(),
        ip_address=ip_address,
        user_agent=user_agent,
        timeout_hours=current_app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"],
    )


@auth_bp.post("/register")
def register_route():
    """
    Create an account and sign it in.

    Self-registration can pick pharmacist, doctor or patient only.
    """
    try:
        data = _json_body()
        password = data.get("password")
        user = auth_service.register(
            username=data.get("username"),
            password=password,
            name=data.get("name"),
            email=data.get("email"),
            role=data.get("role"),
            contact_number=data.get("contact_number", data.get("contactNumber")),
        )
        user, session, token = _open_session(user.username, password)

        response = jsonify({"user": user.to_dict(), "token": token})
        _set_session_cookie(response, token, session)
        return response, 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("register user")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    The response carries the token both in the body and as the session
    cookie. mfa_required tells the client to prompt for a second factor
    before calling MFA-protected endpoints.
    """
    try:
        data = _json_body()
        username = data.get("username")
        password = data.get("password")
        if not username or not password:
            return jsonify({"error": "username and password required"}), 400

        user, session, token = _open_session(username, password)

        response = jsonify({
            "user": user.to_dict(),
            "token": token,
            "mfa_required": user.requires_mfa,
            "message": "Login successful",
        })
        _set_session_cookie(response, token, session)
        return response, 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("login user")


@auth_bp.post("/logout")
def logout_route():
    """Revoke the current session. Always succeeds, even without one."""
    try:
        auth_service.logout(get_request_token(), notifier=get_notifier())
        response = jsonify({"message": "Logout successful"})
        response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
        return response, 200
    except Exception:
        return _internal_error("logout user")


@auth_bp.get("/user")
@require_auth
def current_user_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.patch("/user")
@require_auth
def update_profile_route():
    try:
        user = auth_service.update_profile(g.current_user, _json_body())
        return jsonify({"user": user.to_dict()}), 200
    except PharmaSysError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("update profile")


@auth_bp.post("/user/password")
@require_auth
def change_password_route():
    try:
        data = _json_body()
        revoked = auth_service.change_password(
            g.current_user,
            data.get("current_password", data.get("currentPassword")),
            data.get("new_password", data.get("newPassword")),
            keep_session_id=g.session_token.id,
        )
        return jsonify({"message": "Password updated", "sessions_revoked": revoked}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("change password")
