# Overview: Flask API routes for administrators: user list, role changes, security audit trail.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_access
from ..errors import PharmaSysError, ValidationError, error_response
from ..extensions import db, get_notifier
from ..services import audit_service, auth_service
from ..validation import coerce_int


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_access("admin")
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200


@admin_bp.post("/change-role")
@require_access("admin", mfa=True)
def change_role_route():
    """
    Body: {"userId": <int>, "newRole": <role>} (snake_case also accepted).

    Requires an admin session that has passed MFA when the admin has a
    factor enabled.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("JSON object required")

        user_id = data.get("userId", data.get("user_id"))
        new_role = data.get("newRole", data.get("new_role"))
        if user_id is None or not new_role:
            raise ValidationError("userId and newRole are required")

        user = auth_service.change_role(
            g.current_user,
            coerce_int("userId", user_id),
            new_role,
            notifier=get_notifier(),
        )
        return jsonify({"user": user.to_dict(), "message": "Role updated"}), 200
    except PharmaSysError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change user role")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/security-events")
@require_access("admin")
def security_events_route():
    """
    Query params:
    - user_id: int (optional)
    - event_type: str (optional), e.g. LOGIN_FAILED
    - limit: int (default 100, max 500)
    - offset: int (default 0)
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    events, total = audit_service.list_security_events(
        user_id=request.args.get("user_id", type=int),
        event_type=request.args.get("event_type"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "events": [e.to_dict() for e in events],
        "count": len(events),
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200
