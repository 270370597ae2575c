"""
In-process credential store.

Thread-safe: every operation runs under one lock, so conditional writes are
plain compare-and-swap. Callers get detached copies, never the stored rows,
so nothing outside the store can change its state without going through an
operation.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from models.base_model import as_utc
from models.credential_store import CredentialStore
from models.refresh_token import RefreshToken
from models.user import User
from services.errors import ConflictError

PROFILE_COLUMNS = ("display_name", "first_name", "last_name")


def _copy(obj):
    return obj.clone() if obj is not None else None


class MemoryStorage(CredentialStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._tokens: Dict[str, RefreshToken] = {}

    # users

    def add_user(self, user: User) -> User:
        with self._lock:
            if any(u.email == user.email for u in self._users.values()):
                raise ConflictError("A user with this email address already exists")
            self._users[user.id] = user.clone()
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return _copy(self._users.get(user_id))

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user.clone()
            return None

    def list_users(
        self, page: int, limit: int, include_inactive: bool = False, search: Optional[str] = None
    ) -> Tuple[List[User], int]:
        term = search.strip().casefold() if search else None
        with self._lock:
            users = sorted(
                (
                    u for u in self._users.values()
                    if (include_inactive or u.is_active)
                    and (term is None or term in u.display_name.casefold())
                ),
                key=lambda u: u.email,
            )
            start = (page - 1) * limit
            return [u.clone() for u in users[start:start + limit]], len(users)

    def count_users(self, include_inactive: bool = True) -> int:
        with self._lock:
            return sum(1 for u in self._users.values() if include_inactive or u.is_active)

    def _update_user(self, user_id, values, expected_updated_at=None, **expected):
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            if any(getattr(user, key) != value for key, value in expected.items()):
                return None
            if expected_updated_at is not None and as_utc(user.updated_at) != as_utc(expected_updated_at):
                return None
            for key, value in values.items():
                setattr(user, key, value)
            return user.clone()

    def update_user_profile(self, user_id, changes, now, expected_updated_at=None):
        values = {key: changes[key] for key in PROFILE_COLUMNS if key in changes}
        values["updated_at"] = now
        return self._update_user(user_id, values, expected_updated_at)

    def set_user_email(self, user_id, email, now, expected_updated_at=None):
        with self._lock:
            if any(u.email == email and u.id != user_id for u in self._users.values()):
                raise ConflictError("A user with this email address already exists")
            values = {"email": email, "email_verified": False, "email_verified_at": None, "updated_at": now}
            return self._update_user(user_id, values, expected_updated_at)

    def set_user_active(self, user_id: str, active: bool, now: datetime) -> Optional[User]:
        values = {
            "is_active": active,
            "deactivated_at": None if active else now,
            "updated_at": now,
        }
        return self._update_user(user_id, values, is_active=not active)

    def set_email_verified(self, user_id: str, now: datetime) -> Optional[User]:
        values = {"email_verified": True, "email_verified_at": now, "updated_at": now}
        return self._update_user(user_id, values, is_active=True, email_verified=False)

    def set_user_roles(self, user_id: str, roles: Iterable[str], now: datetime) -> Optional[User]:
        return self._update_user(user_id, {"roles": list(roles), "updated_at": now})

    def set_password_hash(self, user_id: str, password_hash: str, now: datetime) -> bool:
        return self._update_user(user_id, {"password_hash": password_hash, "updated_at": now}) is not None

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            for key in [k for k, t in self._tokens.items() if t.user_id == user_id]:
                del self._tokens[key]
            return True

    # refresh tokens

    def add_refresh_token(self, token: RefreshToken) -> None:
        with self._lock:
            if token.token in self._tokens:
                raise ConflictError("Duplicate refresh token")
            self._tokens[token.token] = token.clone()

    def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        with self._lock:
            return _copy(self._tokens.get(token))

    def list_refresh_tokens(self, user_id: str) -> List[RefreshToken]:
        with self._lock:
            rows = [t.clone() for t in self._tokens.values() if t.user_id == user_id]
        return sorted(rows, key=lambda t: as_utc(t.created_at), reverse=True)

    def rotate_refresh_token(self, presented: str, replacement: RefreshToken, now: datetime) -> bool:
        with self._lock:
            current = self._tokens.get(presented)
            if current is None or not current.is_active(now):
                return False
            if replacement.token in self._tokens:
                raise ConflictError("Duplicate refresh token")
            current.is_revoked = True
            current.revoked_at = now
            current.revoked_reason = "Token refreshed"
            current.replaced_by_token = replacement.id
            current.updated_at = now
            self._tokens[replacement.token] = replacement.clone()
            return True

    def revoke_refresh_token(self, token: str, reason: str, now: datetime) -> bool:
        with self._lock:
            current = self._tokens.get(token)
            if current is None or current.is_revoked:
                return False
            self._revoke(current, reason, now)
            return True

    def revoke_tokens_for_user(self, user_id: str, reason: str, now: datetime) -> int:
        with self._lock:
            active = [t for t in self._tokens.values() if t.user_id == user_id and t.is_active(now)]
            for token in active:
                self._revoke(token, reason, now)
            return len(active)

    def delete_expired_tokens(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key, t in self._tokens.items() if t.is_expired(now)]
            for key in expired:
                del self._tokens[key]
            return len(expired)

    @staticmethod
    def _revoke(token: RefreshToken, reason: str, now: datetime) -> None:
        token.is_revoked = True
        token.revoked_at = now
        token.revoked_reason = reason
        token.updated_at = now
