"""
FastAPI dependency injection: request sessions and principals.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from forum.db import get_db
from forum.services.access import (
    Principal,
    authenticate,
    authenticate_optional,
    credential_from_header,
    require_role,
)


def current_principal(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Principal:
    """Resolve the bearer token or fail with 401."""
    return authenticate(db, credential_from_header(authorization))


def optional_principal(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[Principal]:
    """Resolve the bearer token if present and valid, otherwise None."""
    return authenticate_optional(db, credential_from_header(authorization))


def moderator_principal(principal: Principal = Depends(current_principal)) -> Principal:
    """Require a moderator or admin principal (403 otherwise)."""
    return require_role(principal)
