# Overview: Flask adapter for the authorization gate; binds the session to flask.g.

from functools import wraps

from flask import current_app, g, request

from .errors import Forbidden, MFARequired, PharmaSysError, error_response
from .guards import GuardContext, build_pipeline
from .services import audit_service, session_service


STAFF_ROLES = ("admin", "pharmacist", "doctor")
INVENTORY_ROLES = ("admin", "pharmacist")


def get_request_token() -> str | None:
    """Session token from the Authorization header, else the session cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(current_app.config["AUTH_COOKIE_NAME"]) or None


def _log_denial(error: PharmaSysError, context: GuardContext) -> None:
    if isinstance(error, MFARequired):
        event_type = "MFA_REQUIRED"
    elif isinstance(error, Forbidden):
        event_type = "PERMISSION_DENIED"
    else:
        return

    audit_service.log_security_event(
        user_id=context.user.id if context.user else None,
        event_type=event_type,
        success=False,
        resource=request.path,
        action=request.method,
        reason=error.message,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def require_access(*roles: str, mfa: bool = False):
    """
    Guard a route: authentication, then role membership, then MFA.

    Sets on success:
    - g.current_user: the authenticated User
    - g.session_token: the SessionToken bound to this request

    SECURITY: Returns 401 without a valid session, 403 for a role mismatch,
    and 403 with mfa_required=true when a second factor is enabled but not
    verified in this session. 403 responses are recorded in security_events.
    """
    pipeline = build_pipeline(roles or None, mfa=mfa)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            session = session_service.validate_session(get_request_token())
            context = GuardContext(
                user=session.user if session else None,
                session=session,
            )

            try:
                pipeline.check(context)
            except PharmaSysError as e:
                _log_denial(e, context)
                return error_response(e)

            g.current_user = context.user
            g.session_token = context.session

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_auth(f):
    """Require an authenticated session only."""
    return require_access()(f)
