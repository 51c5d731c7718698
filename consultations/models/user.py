"""User model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from consultations.database import Base

ROLE_REQUESTER = "requester"
ROLE_PROVIDER = "provider"
ROLE_ADMIN = "admin"
ROLES = (ROLE_REQUESTER, ROLE_PROVIDER, ROLE_ADMIN)


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="")
    hashed_password = Column(String)
    role = Column(String, nullable=False, default=ROLE_REQUESTER)  # requester/provider/admin
    is_active = Column(Boolean, nullable=False, default=False)
