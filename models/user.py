from models.base_model import Base, BaseModel
from sqlalchemy import Boolean, Column, DateTime, String, JSON


def normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


class User(BaseModel, Base):
    __tablename__ = "users"

    # Stored normalized (stripped, lower-cased); uniqueness enforced here
    email = Column(String(255), nullable=False, unique=True, index=True)
    display_name = Column(String(100), nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=False)
    roles = Column(JSON, nullable=False, default=lambda: ["user"])
    email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("roles", ["user"])
        kwargs.setdefault("is_active", True)
        kwargs.setdefault("email_verified", False)
        super().__init__(*args, **kwargs)

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])
