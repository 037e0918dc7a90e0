# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/invtrack/routes/auth.py
"""
Authentication API routes

- POST /login issues an HS256 bearer token (24h)
- Self-registration does not exist: admins create users
- Deactivating a user revokes their tokens on the next request
"""

from flask import Blueprint, current_app, request, jsonify, g

from ..extensions import db
from ..errors import InventoryAppError
from ..services import auth_service
from ..decorators import require_auth, require_role, client_ip


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a bearer token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    try:
        user, token = auth_service.authenticate(username, password, ip_address=client_ip())
    except InventoryAppError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "token": token})


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()})


@auth_bp.get("/users")
@require_auth
@require_role("admin")
def list_users_route():
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    users = auth_service.list_users(include_inactive=include_inactive)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@auth_bp.post("/users")
@require_auth
@require_role("admin")
def create_user_route():
    """
    Create a user (admin only).

    Request body:
    {
        "username": str,
        "password": str,
        "email": str (optional),
        "full_name": str (optional),
        "role": "admin" | "manager" | "staff" (default "staff")
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password") or "",
            email=data.get("email"),
            full_name=data.get("full_name"),
            role=data.get("role") or "staff",
            actor_id=g.current_user.id,
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code

    return jsonify({"user": user.to_dict()}), 201


@auth_bp.post("/users/<user_id>/deactivate")
@require_auth
@require_role("admin")
def deactivate_user_route(user_id: str):
    if user_id == g.current_user.id:
        return jsonify({"error": "Cannot deactivate your own account"}), 400

    try:
        user = auth_service.set_user_active(
            user_id, False, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code

    return jsonify({"user": user.to_dict()})
