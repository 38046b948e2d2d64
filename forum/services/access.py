"""Bearer-token authentication and role/ownership checks."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

import jwt
from jwt.exceptions import InvalidTokenError
from sqlalchemy.orm import Session

from forum.config import JWT_ALGORITHM, JWT_EXPIRES_HOURS, JWT_SECRET
from forum.errors import Forbidden, InvalidCredential, PrincipalNotFound, Unauthenticated
from forum.models import Role, User

logger = logging.getLogger(__name__)

MODERATOR_ROLES = frozenset({Role.moderator, Role.admin})


@dataclass(frozen=True)
class Principal:
    """Authenticated identity derived from a request credential (no secret fields)."""
    id: int
    username: str
    email: str
    role: Role
    post_count: int = 0
    reputation: int = 0
    bio: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_moderator(self) -> bool:
        return self.role in MODERATOR_ROLES

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=Role(user.role),
            post_count=user.post_count,
            reputation=user.reputation,
            bio=user.bio,
            created_at=user.created_at,
        )


def issue_token(user: User) -> str:
    """Sign a bearer token for the given user."""
    payload = {
        "sub": str(user.id),
        "exp": datetime.utcnow() + timedelta(hours=JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def credential_from_header(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate(db: Session, credential: Optional[str]) -> Principal:
    """
    Resolve a bearer credential to a principal.

    Raises:
        Unauthenticated: no credential supplied
        InvalidCredential: malformed, expired or wrongly signed token
        PrincipalNotFound: the referenced user no longer exists
    """
    if not credential:
        raise Unauthenticated()
    try:
        payload = jwt.decode(credential, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError) as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise InvalidCredential()

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise PrincipalNotFound()
    return Principal.from_user(user)


def authenticate_optional(db: Session, credential: Optional[str]) -> Optional[Principal]:
    """Same checks as authenticate, but any failure yields None."""
    try:
        return authenticate(db, credential)
    except Unauthenticated:
        return None


def require_role(principal: Principal, roles: Iterable[Role] = MODERATOR_ROLES) -> Principal:
    if principal.role not in set(roles):
        raise Forbidden("Moderator access required")
    return principal


def can_mutate(entity, principal: Principal) -> bool:
    """True if the principal authored the topic/post or holds a moderator role."""
    return entity.author_id == principal.id or principal.is_moderator
