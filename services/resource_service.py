"""
CRUD orchestration with version tags.

ResourceService wraps every read in a conditional-read decision and every
write in a conditional-write check, stamping results with the current tag.
Subclasses supply the store calls for one entity type.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from models.base_model import utcnow
from models.credential_store import CredentialStore
from models.user import User, normalize_email
from services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from utils.etag import (
    EMPTY_COLLECTION_TAG,
    ReadDecision,
    WriteDecision,
    handle_conditional_read,
    tag_for,
    tag_for_collection,
    validate_conditional_write,
)
from utils.logging import get_logger

logger = get_logger(__name__)

DEACTIVATED_REASON = "Account deactivated"


@dataclass(frozen=True)
class VersionedResult:
    item: Any
    etag: str
    not_modified: bool = False


@dataclass(frozen=True)
class VersionedPage:
    items: List[Any]
    total: int
    page: int
    limit: int
    etag: str
    not_modified: bool = False
    filters: dict = field(default_factory=dict)


class ResourceService(ABC):
    resource_name = "Resource"
    # cleared by a full replacement (PUT) when the client leaves them out
    replaceable_fields: Tuple[str, ...] = ()

    def __init__(self, store: CredentialStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    # hooks for subclasses

    @abstractmethod
    def fetch(self, resource_id: str):
        """Return the item, or None."""

    @abstractmethod
    def fetch_page(self, page: int, limit: int, **filters) -> Tuple[Sequence[Any], int]:
        """Return one page of items and the total across all pages."""

    @abstractmethod
    def apply_update(self, item, changes: dict, expected_updated_at: Optional[datetime]):
        """Persist `changes`; return the updated item, or None if the row moved."""

    # tagging

    @staticmethod
    def tag(item) -> str:
        return tag_for(item.id, item.updated_at)

    @staticmethod
    def tag_page(items: Iterable[Any], total: int, page: int, limit: int, filters: Optional[dict] = None) -> str:
        """
        Tag for one page. The total, the page window and the filters are part
        of the tag, so a page whose rows are unchanged still gets a new tag
        when rows are added or removed elsewhere in the collection.
        """
        if total == 0:
            return EMPTY_COLLECTION_TAG
        scope = {"total": total, "page": page, "limit": limit}
        scope.update((f"filter.{key}", value) for key, value in (filters or {}).items())
        return tag_for_collection(((item.id, item.updated_at) for item in items), scope)

    # operations

    def get_or_404(self, resource_id: str):
        item = self.fetch(resource_id)
        if item is None:
            raise NotFoundError(self.resource_name, resource_id)
        return item

    def read(self, resource_id: str, if_none_match: Optional[str] = None) -> VersionedResult:
        item = self.get_or_404(resource_id)
        etag = self.tag(item)
        decision = handle_conditional_read(if_none_match, etag)
        return VersionedResult(item, etag, decision is ReadDecision.SERVE_NOT_MODIFIED)

    def read_page(self, page: int, limit: int, if_none_match: Optional[str] = None, **filters) -> VersionedPage:
        items, total = self.fetch_page(page, limit, **filters)
        etag = self.tag_page(items, total, page, limit, filters)
        decision = handle_conditional_read(if_none_match, etag)
        return VersionedPage(
            list(items), total, page, limit, etag,
            decision is ReadDecision.SERVE_NOT_MODIFIED, dict(filters),
        )

    def conditional_write(self, resource_id: str, if_match: Optional[str], apply) -> VersionedResult:
        """
        Check If-Match against the current tag, then run `apply(item, expected)`.

        When the client sent a tag, `expected` is the updated_at it was checked
        against and the store only writes if the row still carries it, so a
        write that lands between the check and ours is also rejected.
        """
        item = self.get_or_404(resource_id)
        current = self.tag(item)
        if validate_conditional_write(if_match, current) is WriteDecision.REJECT:
            logger.info("stale_if_match_rejected", resource=self.resource_name, resource_id=resource_id)
            raise PreconditionFailedError(current, if_match)

        expected = item.updated_at if if_match else None
        updated = apply(item, expected)
        if updated is None:
            latest = self.get_or_404(resource_id)
            logger.info("concurrent_write_rejected", resource=self.resource_name, resource_id=resource_id)
            raise PreconditionFailedError(self.tag(latest), if_match)
        return VersionedResult(updated, self.tag(updated))

    def update(self, resource_id: str, changes: dict, if_match: Optional[str] = None) -> VersionedResult:
        return self.conditional_write(
            resource_id, if_match, lambda item, expected: self.apply_update(item, changes, expected)
        )

    def replace(self, resource_id: str, fields: dict, if_match: Optional[str] = None) -> VersionedResult:
        """Full replacement: replaceable fields missing from `fields` become None."""
        changes = {key: None for key in self.replaceable_fields}
        changes.update(fields)
        return self.update(resource_id, changes, if_match)


class UserService(ResourceService):
    resource_name = "User"
    replaceable_fields = ("first_name", "last_name")

    def __init__(self, store, sessions, passwords, allowed_roles=("admin", "user"), clock=utcnow):
        super().__init__(store, clock)
        self._sessions = sessions
        self._passwords = passwords
        self._allowed_roles = tuple(allowed_roles)

    def fetch(self, resource_id):
        return self._store.get_user(resource_id)

    def fetch_page(self, page, limit, include_inactive=False, search=None):
        return self._store.list_users(page, limit, include_inactive=include_inactive, search=search)

    def apply_update(self, item, changes, expected_updated_at):
        if not item.is_active:
            raise ConflictError("User is not active and cannot be modified")
        return self._store.update_user_profile(item.id, changes, self._clock(), expected_updated_at)

    @staticmethod
    def ensure_access(actor: User, target_id: str) -> None:
        """Users may act on themselves; admins on anyone."""
        if actor.id != target_id and not actor.has_role("admin"):
            raise AuthorizationError("You can only access your own account")

    def search(self, term: Optional[str], page: int, limit: int, if_none_match: Optional[str] = None,
               include_inactive: bool = False) -> VersionedPage:
        """Case-insensitive substring match on display name."""
        term = (term or "").strip()
        if not term:
            raise ValidationError({"searchTerm": ["Search term is required"]})
        return self.read_page(page, limit, if_none_match, include_inactive=include_inactive, search=term)

    def create_user(self, email, password, display_name, roles=("user",), first_name=None, last_name=None) -> User:
        self._check_roles(roles)
        now = self._clock()
        user = User(
            email=normalize_email(email),
            display_name=display_name,
            first_name=first_name,
            last_name=last_name,
            password_hash=self._passwords.hash(password),
            roles=list(dict.fromkeys(roles)),
            created_at=now,
            updated_at=now,
        )
        created = self._store.add_user(user)
        logger.info("user_created", user_id=created.id, roles=created.roles)
        return created

    def change_email(self, user_id: str, email: str, if_match: Optional[str] = None) -> VersionedResult:
        email = normalize_email(email)
        existing = self._store.get_user_by_email(email)
        if existing is not None and existing.id != user_id:
            raise ConflictError("A user with this email address already exists")

        def apply(item, expected):
            if not item.is_active:
                raise ConflictError("User is not active and cannot be modified")
            if item.email == email:
                return item
            return self._store.set_user_email(item.id, email, self._clock(), expected)

        return self.conditional_write(user_id, if_match, apply)

    def verify_email(self, user_id: str) -> User:
        updated = self._store.set_email_verified(user_id, self._clock())
        if updated is None:
            user = self.get_or_404(user_id)
            if not user.is_active:
                raise ConflictError("User is not active and cannot be modified")
            raise ConflictError("Email address is already verified")
        logger.info("email_verified", user_id=user_id)
        return updated

    def _set_active(self, user_id: str, active: bool) -> User:
        # the store only flips rows still in the opposite state, so of two
        # concurrent calls exactly one gets a row back
        updated = self._store.set_user_active(user_id, active, self._clock())
        if updated is None:
            self.get_or_404(user_id)
            raise ConflictError("User is already active" if active else "User is already deactivated")
        return updated

    def deactivate(self, user_id: str) -> User:
        updated = self._set_active(user_id, False)
        self._sessions.logout_all(user_id, DEACTIVATED_REASON)
        logger.info("user_deactivated", user_id=user_id)
        return updated

    def reactivate(self, user_id: str) -> User:
        updated = self._set_active(user_id, True)
        logger.info("user_reactivated", user_id=user_id)
        return updated

    def _check_roles(self, roles):
        unknown = sorted(set(roles) - set(self._allowed_roles))
        if unknown:
            allowed = ", ".join(self._allowed_roles)
            raise ValidationError({"roles": [f"Unknown roles {unknown}; allowed: {allowed}"]})

    def set_roles(self, user_id: str, roles: List[str]) -> User:
        self._check_roles(roles)
        self.get_or_404(user_id)
        updated = self._store.set_user_roles(user_id, list(dict.fromkeys(roles)), self._clock())
        if updated is None:
            raise NotFoundError(self.resource_name, user_id)
        return updated

    def delete(self, user_id: str) -> None:
        if not self._store.delete_user(user_id):
            raise NotFoundError(self.resource_name, user_id)
        logger.warning("user_deleted", user_id=user_id)

    def statistics(self) -> dict:
        total = self._store.count_users(include_inactive=True)
        active = self._store.count_users(include_inactive=False)
        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "active_percentage": round(active / total * 100, 2) if total else 0,
            "generated_at": self._clock().isoformat(),
        }
