"""Registration, login and role maintenance for forum users."""

import logging
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from forum.errors import InvalidCredential, NotFound, ValidationError
from forum.models import Role, User
from forum.services.access import issue_token

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def register(
    db: Session, username: Optional[str], email: Optional[str], password: Optional[str]
) -> Tuple[User, str]:
    """
    Create a user with role ``user`` and issue a token for it.

    Raises:
        ValidationError: missing fields, short password, or taken username/email
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email or not password:
        raise ValidationError("Please provide all required fields")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    existing = (
        db.query(User)
        .filter(or_(User.username == username, User.email == email))
        .first()
    )
    if existing:
        raise ValidationError("User already exists")

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        role=Role.user,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ValidationError("User already exists")

    logger.info("Registered user %s (id=%s)", user.username, user.id)
    return user, issue_token(user)


def login(db: Session, email: Optional[str], password: Optional[str]) -> Tuple[User, str]:
    """
    Verify email/password and issue a token.

    Raises:
        ValidationError: missing email or password
        InvalidCredential: unknown email or wrong password
    """
    if not email or not password:
        raise ValidationError("Please provide email and password")

    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if user is None or not check_password_hash(user.password_hash, password):
        raise InvalidCredential("Invalid email or password")
    return user, issue_token(user)


def set_role(db: Session, username: str, role: Role) -> User:
    """Change a user's role (maintenance operation)."""
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise NotFound(f"User {username} not found")
    user.role = role
    db.flush()
    logger.info("Set role of %s to %s", username, role.value)
    return user


def adjust_post_count(db: Session, user_id: int, delta: int) -> None:
    """Atomically add ``delta`` to the user's post count."""
    db.query(User).filter(User.id == user_id).update(
        {User.post_count: User.post_count + delta}, synchronize_session=False
    )
