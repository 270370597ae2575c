"""
RefreshToken model: one outstanding, renewable session grant.
Fields:
- token (opaque secret, unique) - never log it
- user_id (String(36)) - FK to users.id
- expires_at
- is_revoked, revoked_at, revoked_reason
- replaced_by_token: id of the token issued when this one was rotated
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from models.base_model import BaseModel, Base, as_utc


class TokenState(str, Enum):
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_reason = Column(String(255), nullable=True)
    replaced_by_token = Column(String(36), nullable=True)

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("is_revoked", False)
        super().__init__(*args, **kwargs)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= as_utc(now)

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked and not self.is_expired(now)

    def state(self, now: datetime) -> TokenState:
        if self.is_revoked:
            return TokenState.ROTATED if self.replaced_by_token else TokenState.REVOKED
        if self.is_expired(now):
            return TokenState.EXPIRED
        return TokenState.ACTIVE

    def __repr__(self):
        # token value deliberately left out
        return f"<RefreshToken id={self.id} user_id={self.user_id} revoked={self.is_revoked}>"
