"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/validate-token
- POST /auth/logout
- POST /auth/logout-all
- POST /auth/change-password
- GET  /auth/me

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived JWT access tokens and opaque, single-use refresh tokens
- Stores refresh tokens in the credential store so they can be rotated and revoked
- Every failure is raised as a typed error and rendered by api.errors
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from models.base_model import as_utc
from models.schemas.auth import ChangePasswordSchema, LoginSchema, RefreshTokenSchema, RegisterSchema
from models.schemas.user import UserOutSchema
from services.session_manager import AuthResult
from utils.decorators import jwt_required

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshTokenSchema()
change_password_schema = ChangePasswordSchema()
user_out_schema = UserOutSchema()


def _sessions():
    return current_app.extensions["session_manager"]


def _token_response(result: AuthResult, status: int = 200):
    settings = current_app.extensions["settings"]
    response = jsonify(
        {
            "access_token": result.access_token,
            "token_type": "bearer",
            "expires_in": int(settings.access_token_ttl.total_seconds()),
            "access_token_expires_at": as_utc(result.access_token_expires_at).isoformat(),
            "refresh_token": result.refresh_token,
            "refresh_token_expires_at": as_utc(result.refresh_token_expires_at).isoformat(),
            "user": user_out_schema.dump(result.user),
        }
    )
    response.status_code = status
    response.headers["Cache-Control"] = "no-store"
    return response


@bp.post("/auth/register")
def register():
    """
    Register a new user and sign them in.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            confirm_password: { type: string }
            display_name: { type: string }
            first_name: { type: string }
            last_name: { type: string }
    responses:
      201:
        description: Created (returns tokens and user)
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    data = register_schema.load(request.get_json(silent=True) or {})
    result = _sessions().register(
        email=data["email"],
        password=data["password"],
        display_name=data["display_name"],
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
    )
    return _token_response(result, 201)


@bp.post("/auth/login")
def login():
    """
    Login: return access_token, refresh_token and user
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid email or password
    """
    data = login_schema.load(request.get_json(silent=True) or {})
    return _token_response(_sessions().login(data["email"], data["password"]))


@bp.post("/auth/refresh")
def refresh():
    """
    Exchange a refresh token for a new access/refresh pair (rotation).
    The presented refresh token cannot be used again.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns the new pair)
      401:
        description: Invalid or expired token
    """
    data = refresh_schema.load(request.get_json(silent=True) or {})
    return _token_response(_sessions().refresh(data["refresh_token"]))


@bp.post("/auth/validate-token")
def validate_token():
    """
    Check whether a refresh token is still usable. The token is not consumed.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: '{"valid": true|false}'
      422:
        description: refresh_token missing
    """
    data = refresh_schema.load(request.get_json(silent=True) or {})
    valid = _sessions().validate_refresh_token(data["refresh_token"])
    response = jsonify({"valid": valid})
    response.headers["Cache-Control"] = "no-store"
    return response, 200


@bp.post("/auth/logout")
def logout():
    """
    Logout: revokes the given refresh token. Unknown or already revoked
    tokens are accepted silently.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      204:
        description: ""
      422:
        description: refresh_token missing
    """
    data = refresh_schema.load(request.get_json(silent=True) or {})
    _sessions().logout(data["refresh_token"])
    return ("", 204)


@bp.post("/auth/logout-all")
@jwt_required()
def logout_all():
    """
    Revoke every active refresh token of the current user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Number of revoked sessions
      401:
        description: Unauthorized
    """
    revoked = _sessions().logout_all(g.current_user.id)
    return jsonify({"revoked": revoked}), 200


@bp.post("/auth/change-password")
@jwt_required()
def change_password():
    """
    Change the current user's password; all sessions are revoked
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             current_password: { type: string }
             new_password: { type: string }
             confirm_new_password: { type: string }
    responses:
      200:
        description: Password changed
      401:
        description: Unauthorized
      422:
        description: Validation error
    """
    data = change_password_schema.load(request.get_json(silent=True) or {})
    revoked = _sessions().change_password(
        g.current_user.id, data["current_password"], data["new_password"]
    )
    return jsonify({"message": "Password changed. Please log in again.", "revoked": revoked}), 200


@bp.get("/auth/me")
@jwt_required()
def me():
    """
    Get current user info
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": user_out_schema.dump(g.current_user)}), 200
