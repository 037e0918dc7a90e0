# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .models import UserRole
from .services import auth_service


def _is_authenticated() -> bool:
    return getattr(g, 'current_user', None) is not None


def client_ip() -> str | None:
    """Client address for audit entries: first X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or request.remote_addr
    return request.remote_addr


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the authenticated, active User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid or expired token
    - User account deactivated or removed since the token was issued
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Extract token from Authorization header
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        user = auth_service.user_from_token(token)
        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(minimum_role: UserRole | str):
    """
    Require the current user's role to rank at least minimum_role
    (admin > manager > staff). Must be stacked under @require_auth.
    """
    role = UserRole.parse(minimum_role, "role")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not auth_service.has_role(g.current_user, role.value):
                return jsonify({
                    "error": "Permission denied",
                    "required_role": role.value,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
