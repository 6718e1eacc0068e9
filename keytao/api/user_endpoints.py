"""User endpoints: own profile, password and contribution stats; admin user overview."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import AuthContext, get_auth_context, require_admin
from keytao.schemas.base import Envelope, Message
from keytao.schemas.user import PasswordChange, ProfileUpdate, SiteStats, UserRead, UserStats
from keytao.services.user_service import UserService

router = APIRouter(prefix="/user", tags=["user"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@router.patch("/profile", response_model=Envelope[UserRead])
async def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    """Set nickname and email; empty values clear them."""
    user = UserService(db).update_profile(auth.user_id, payload)
    return Envelope(status="ok", data=UserRead.model_validate(user))


@router.post("/change-password", response_model=Envelope[Message])
async def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    UserService(db).change_password(auth.user_id, payload)
    return Envelope(status="ok", data=Message(message="Password changed"))


@router.get("/stats", response_model=Envelope[UserStats])
async def user_stats(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return Envelope(status="ok", data=UserService(db).user_stats(auth.user_id))


@admin_router.get("/users", response_model=Envelope[list[UserRead]])
async def list_users(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
):
    users = UserService(db).list_users(limit, offset)
    return Envelope(status="ok", data=[UserRead.model_validate(u) for u in users])


@admin_router.get("/stats", response_model=Envelope[SiteStats])
async def site_stats(
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
):
    return Envelope(status="ok", data=UserService(db).site_stats())
