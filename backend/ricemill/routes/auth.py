# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/ricemill/routes/auth.py
"""
Login, logout and whoami.

There is no signup endpoint; accounts come from `flask users create`.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import audit_service
from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """Accepts username or email; returns a bearer token for the Authorization header."""
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        audit_service.record_event(
            action="LOGIN",
            resource_type="AUTH",
            resource_id=user.id,
            user=user,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    try:
        user = g.current_user
        session_service.revoke_session(g.token, reason="User logout")

        audit_service.record_event(
            action="LOGOUT",
            resource_type="AUTH",
            resource_id=user.id,
            user=user,
        )
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
