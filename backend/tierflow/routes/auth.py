# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/tierflow/routes/auth.py
"""
Authentication API routes

Users are provisioned by administrators through the CLI; there is no
self-registration. A successful login returns a bearer token that carries the
user's organization as tenant context.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": str,      // or "email"
        "password": str,
        "org_id": int         // optional, disambiguates usernames across orgs
    }

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")
        org_id = data.get("org_id")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400
        if org_id is not None and (isinstance(org_id, bool) or not isinstance(org_id, int)):
            return jsonify({"error": "org_id must be an integer"}), 400

        user = auth_service.authenticate(username, password, org_id=org_id)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user_id=user.id)

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "org_id": session.org_id,
            "role": user.role,
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1]

        revoked = session_service.revoke_session(token, reason="User logout")
        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Return the caller with their tenant context."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "org_id": g.org_id,
        "role": g.role,
        "session": g.session_context.session.to_dict(),
    }), 200
