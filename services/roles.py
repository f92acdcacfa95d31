import logging
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.user import ROLE_STUDENT, ROLES, User, UserRole

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    ANONYMOUS = "anonymous"


def get_role(db: Session, user_id: int) -> Optional[str]:
    row = db.query(UserRole.role).filter(UserRole.user_id == user_id).one_or_none()
    return row[0] if row else None


def _insert_role(db: Session, user_id: int, role: str) -> str:
    """Insert once per principal; a concurrent insert wins and its value is returned."""
    try:
        db.add(UserRole(user_id=user_id, role=role))
        db.commit()
        return role
    except IntegrityError:
        db.rollback()
        existing = get_role(db, user_id)
        if existing is None:
            raise
        logger.info("Role for user %s already set to %s", user_id, existing)
        return existing


def assign_role(db: Session, user_id: int, role: str) -> str:
    """Persist the role picked at sign-up. Roles are written once and never changed."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    existing = get_role(db, user_id)
    if existing is not None:
        return existing
    return _insert_role(db, user_id, role)


def ensure_role(db: Session, user_id: int, default: str = ROLE_STUDENT) -> str:
    """Role for a federated sign-in, assigning ``default`` on first visit."""
    role = get_role(db, user_id)
    if role is not None:
        return role
    return _insert_role(db, user_id, default)


class AuthContext:
    """Who is calling and in which role.

    Starts ``unresolved``; ``resolve`` moves through ``resolving`` to either
    ``resolved`` (user and role known) or ``anonymous``. Failures while
    resolving end in ``anonymous``, never in a guessed role.
    """

    def __init__(self, user_id: Optional[int] = None):
        self.user_id = user_id
        self.user: Optional[User] = None
        self.role: Optional[str] = None
        self.state = AuthState.UNRESOLVED

    def resolve(self, db: Session) -> "AuthContext":
        if self.user_id is None:
            self.state = AuthState.ANONYMOUS
            return self
        self.state = AuthState.RESOLVING
        try:
            user = db.get(User, self.user_id)
            role = get_role(db, self.user_id) if user else None
        except SQLAlchemyError:
            logger.warning("Role lookup failed for user %s", self.user_id, exc_info=True)
            user, role = None, None
        if user is None or role is None:
            self.user, self.role = None, None
            self.state = AuthState.ANONYMOUS
        else:
            self.user, self.role = user, role
            self.state = AuthState.RESOLVED
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.RESOLVED

    def has_role(self, *roles: str) -> bool:
        if not self.is_authenticated:
            return False
        return not roles or self.role in roles
