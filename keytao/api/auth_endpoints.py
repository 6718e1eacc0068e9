"""Authentication endpoints: username registration, login and token refresh."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import get_current_user
from keytao.core.exceptions import AuthenticationError, ValidationError
from keytao.core.jwt import create_access_token, create_refresh_token, decode_token
from keytao.core.security import hash_password, verify_password, scopes_for_role
from keytao.models.user import User, UserRole, UserStatus
from keytao.schemas.base import Envelope
from keytao.schemas.user import UserCreate, UserRead, LoginRequest, Token, TokenRefresh

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(user: User) -> Token:
    access = create_access_token(str(user.id), scopes=scopes_for_role(user.role.value))
    refresh = create_refresh_token(str(user.id))
    return Token(access_token=access, refresh_token=refresh)


@router.post("/register", response_model=Envelope, status_code=status.HTTP_201_CREATED)
async def register_user(payload: UserCreate, db: Session = Depends(get_db)):
    existing = db.execute(select(User).where(User.name == payload.name)).scalar_one_or_none()
    if existing:
        raise ValidationError("Username already registered", details={"field": "name"})
    if payload.email:
        taken = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
        if taken:
            raise ValidationError("Email already registered", details={"field": "email"})
    user = User(
        name=payload.name,
        nickname=payload.nickname or payload.name,
        email=payload.email,
        hashed_password=hash_password(payload.password),
        role=UserRole.USER,
        status=UserStatus.ENABLE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return Envelope(status="ok", data={"user": UserRead.model_validate(user), "token": _issue_tokens(user)})


@router.post("/login", response_model=Envelope)
async def login_user(payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.execute(select(User).where(User.name == payload.name)).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise AuthenticationError("Invalid credentials")
    if user.status != UserStatus.ENABLE:
        raise AuthenticationError("User account is disabled")
    return Envelope(status="ok", data={"user": UserRead.model_validate(user), "token": _issue_tokens(user)})


@router.post("/refresh", response_model=Envelope)
async def refresh_token(payload: TokenRefresh, db: Session = Depends(get_db)):
    decoded = decode_token(payload.refresh_token, refresh=True)
    if not decoded or not decoded.get("sub"):
        raise AuthenticationError("Invalid refresh token")
    user = db.get(User, int(decoded["sub"]))
    if user is None or user.status != UserStatus.ENABLE:
        raise AuthenticationError("Invalid refresh token")
    return Envelope(status="ok", data={"token": _issue_tokens(user)})


@router.get("/me", response_model=Envelope)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Get current user from the bearer token."""
    return Envelope(status="ok", data={"user": UserRead.model_validate(current_user)})
