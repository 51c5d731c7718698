"""Caller and counterparty identities as the scheduling engine sees them."""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from consultations.models.user import ROLE_ADMIN, ROLE_PROVIDER, User
from consultations.scheduling.errors import NotFound


@dataclass(frozen=True)
class Identity:
    id: int
    role: str
    contact_address: str
    name: str = ''

    @property
    def is_provider(self) -> bool:
        return self.role == ROLE_PROVIDER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: User) -> 'Identity':
        return cls(id=user.id, role=user.role, contact_address=user.email, name=user.name or '')


class IdentityDirectory(Protocol):
    def resolve(self, user_id: int) -> Identity: ...


class UserDirectory:
    """Resolves identities from the users table."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, user_id: int) -> Identity:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound('User not found.')
        return Identity.from_user(user)
