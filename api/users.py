from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort, current_app, url_for

from api.http_caching import if_match, if_none_match, not_modified, tagged_json
from models.schemas.user import (
    ChangeEmailSchema,
    CreateUserSchema,
    RolesSchema,
    UserOutSchema,
    UserProfileSchema,
)
from utils.decorators import jwt_required, roles_required

MAX_LIMIT = 100

bp = Blueprint("users", __name__)

profile_schema = UserProfileSchema()
create_user_schema = CreateUserSchema()
change_email_schema = ChangeEmailSchema()
roles_schema = RolesSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def _users():
    return current_app.extensions["user_service"]


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def _tagged_user(result, status=200):
    if result.not_modified:
        return not_modified(result.etag)
    return tagged_json({"data": user_out_schema.dump(result.item)}, result.etag, status)


@bp.get("/users")
@jwt_required()
def list_users():
    """
    List users (conditional: If-None-Match)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
      - in: query
        name: include_inactive
        type: boolean
        description: "Admins only; ignored for other users"
    responses:
      200:
        description: List of users, with a collection ETag
      304:
        description: Not modified
    """
    page, limit = parse_pagination()
    result = _users().read_page(page, limit, if_none_match(), include_inactive=_include_inactive())
    return _tagged_page(result)


def _include_inactive() -> bool:
    return (
        request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
        and g.current_user.has_role("admin")
    )


def _tagged_page(result):
    if result.not_modified:
        return not_modified(result.etag, collection=True)
    return tagged_json(
        {
            "data": user_list_out_schema.dump(result.items),
            "meta": {"page": result.page, "limit": result.limit, "total": result.total},
        },
        result.etag,
        collection=True,
    )


@bp.get("/users/search")
@jwt_required()
def search_users():
    """
    Search users by display name (conditional: If-None-Match)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: searchTerm
        type: string
        required: true
        description: "Case-insensitive substring of the display name"
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
    responses:
      200:
        description: Matching users, with a collection ETag
      304:
        description: Not modified
      422:
        description: searchTerm missing or blank
    """
    page, limit = parse_pagination()
    term = request.args.get("searchTerm", request.args.get("q"))
    result = _users().search(term, page, limit, if_none_match(), include_inactive=_include_inactive())
    return _tagged_page(result)


@bp.post("/users")
@roles_required(["admin"])
def create_user():
    """
    Create a user with the given roles - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            display_name: { type: string }
            first_name: { type: string }
            last_name: { type: string }
            roles:
              type: array
              items: { type: string }
    responses:
      201:
        description: Created, with ETag and Location
      409:
        description: Email already registered
      422:
        description: Validation error or unknown role
    """
    data = create_user_schema.load(request.get_json(silent=True) or {})
    user = _users().create_user(
        data["email"],
        data["password"],
        data["display_name"],
        roles=data["roles"],
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
    )
    response = tagged_json({"data": user_out_schema.dump(user)}, _users().tag(user), 201)
    response.headers["Location"] = url_for("users.get_user", user_id=user.id)
    return response


@bp.get("/users/statistics")
@roles_required(["admin"])
def statistics():
    """
    User statistics - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      403: { description: Forbidden }
    """
    return jsonify({"data": _users().statistics()}), 200


@bp.get("/users/<user_id>")
@jwt_required()
def get_user(user_id: str):
    """
    Get a single user (conditional: If-None-Match)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: header
        name: If-None-Match
        type: string
    responses:
      200:
        description: User found, with ETag
      304:
        description: Not modified
      404:
        description: Not found
    """
    return _tagged_user(_users().read(user_id, if_none_match()))


def _update(user_id: str, partial: bool):
    _users().ensure_access(g.current_user, user_id)
    changes = profile_schema.load(request.get_json(silent=True) or {}, partial=partial)
    if partial:
        return _tagged_user(_users().update(user_id, changes, if_match()))
    return _tagged_user(_users().replace(user_id, changes, if_match()))


@bp.put("/users/<user_id>")
@jwt_required()
def replace_profile(user_id: str):
    """
    Replace a user's profile (conditional: If-Match) - self or admin.
    Optional names left out of the body are cleared.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: header
        name: If-Match
        type: string
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            display_name: { type: string, maxLength: 100 }
            first_name: { type: string, maxLength: 50 }
            last_name: { type: string, maxLength: 50 }
    responses:
      200:
        description: Updated, with the new ETag
      403:
        description: Forbidden
      404:
        description: Not found
      412:
        description: Stale If-Match
      422:
        description: Validation error
    """
    return _update(user_id, partial=False)


@bp.patch("/users/<user_id>")
@jwt_required()
def update_profile(user_id: str):
    """
    Update a user's profile (partial, conditional: If-Match) - self or admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: header
        name: If-Match
        type: string
      - in: body
        name: body
        required: true
        schema:
          type: object
    responses:
      200:
        description: Updated, with the new ETag
      412:
        description: Stale If-Match
    """
    return _update(user_id, partial=True)


@bp.put("/users/<user_id>/email")
@jwt_required()
def change_email(user_id: str):
    """
    Change a user's email (conditional: If-Match) - self or admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      200: { description: OK }
      409: { description: Email already in use }
      412: { description: Stale If-Match }
    """
    _users().ensure_access(g.current_user, user_id)
    data = change_email_schema.load(request.get_json(silent=True) or {})
    return _tagged_user(_users().change_email(user_id, data["email"], if_match()))


@bp.post("/users/<user_id>/deactivate")
@roles_required(["admin"])
def deactivate(user_id: str):
    """
    Deactivate a user and revoke their sessions - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      409: { description: Already deactivated }
    """
    user = _users().deactivate(user_id)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.post("/users/<user_id>/reactivate")
@roles_required(["admin"])
def reactivate(user_id: str):
    """
    Reactivate a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      409: { description: Already active }
    """
    user = _users().reactivate(user_id)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.post("/users/<user_id>/verify-email")
@jwt_required()
def verify_email(user_id: str):
    """
    Mark a user's email address as verified - self or admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK, with the new ETag }
      404: { description: Not found }
      409: { description: Already verified or user inactive }
    """
    _users().ensure_access(g.current_user, user_id)
    user = _users().verify_email(user_id)
    return tagged_json({"data": user_out_schema.dump(user)}, _users().tag(user))


@bp.post("/users/<user_id>/roles")
@roles_required(["admin"])
def set_roles(user_id: str):
    """
    Admin-only: set roles for a user (roles array).
    Body: { "roles": ["admin", "user"] }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             roles:
               type: array
               items: { type: string }
    responses:
      200: { description: OK }
      422: { description: Unknown role }
    """
    data = roles_schema.load(request.get_json(silent=True) or {})
    user = _users().set_roles(user_id, data["roles"])
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<user_id>")
@roles_required(["admin"])
def delete_user(user_id: str):
    """
    Delete a user and their refresh tokens - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      204:
        description: Deleted
      404:
        description: Not found
    """
    _users().delete(user_id)
    return ("", 204)
