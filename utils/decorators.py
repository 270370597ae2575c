from __future__ import annotations
from functools import wraps
from flask import request, g, current_app

from services.errors import AuthorizationError, InvalidTokenError


def jwt_required():
    """
    Require a valid bearer access token whose subject is an active user.
    Sets g.current_user, g.current_user_roles and g.current_token_jti.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                raise InvalidTokenError("missing or malformed Authorization header")
            token = auth.split(" ", 1)[1].strip()

            sessions = current_app.extensions["session_manager"]
            user, claims = sessions.authenticate(token)
            g.current_user = user
            # roles come from the store, not the token, so role changes apply immediately
            g.current_user_roles = list(user.roles or [])
            g.current_token_jti = claims.get("jti")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the user has ANY of the required roles.
    Deny (403) only if there is NO overlap between user_roles and required_roles.
    """
    req = set(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            user_roles = set(getattr(g, "current_user_roles", []))
            if not (user_roles & req):
                raise AuthorizationError("Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
