"""
FastAPI routes for registration, login and token verification.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from forum.db import get_db
from forum.deps import current_principal
from forum.services import users
from forum.services.access import Principal
from forum.services.serializers import serialize_user


# Request models
class RegisterRequest(BaseModel):
    """Request body for registration."""
    username: Optional[str] = Field(None, description="Unique display name")
    email: Optional[str] = Field(None, description="Unique email address")
    password: Optional[str] = Field(None, description="Plain-text password")


class LoginRequest(BaseModel):
    """Request body for login."""
    email: Optional[str] = Field(None, description="Registered email address")
    password: Optional[str] = Field(None, description="Plain-text password")


# Router
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)) -> dict:
    user, token = users.register(db, body.username, body.email, body.password)
    return {
        "success": True,
        "message": "User registered successfully",
        "token": token,
        "user": serialize_user(user),
    }


@router.post("/login")
def login(body: LoginRequest, db: Session = Depends(get_db)) -> dict:
    user, token = users.login(db, body.email, body.password)
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "user": serialize_user(user),
    }


@router.get("/verify-token")
def verify_token(principal: Principal = Depends(current_principal)) -> dict:
    """Confirm the bearer token is still valid and return its user."""
    return {"success": True, "valid": True, "user": serialize_user(principal)}


@router.get("/me")
def me(principal: Principal = Depends(current_principal)) -> dict:
    return {"success": True, "user": serialize_user(principal)}
