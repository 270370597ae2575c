"""
Persistence layer: SQLAlchemy models and credential store implementations.

There is no module-level storage singleton; the application factory builds a
store and injects it into the services.
"""
from models.base_model import Base
from models.refresh_token import RefreshToken, TokenState
from models.user import User

__all__ = ["Base", "RefreshToken", "TokenState", "User"]
