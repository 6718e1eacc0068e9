import re

from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime

from keytao.models.batch import BatchStatus
from keytao.models.user import UserRole, UserStatus

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class UserCreate(BaseModel):
    name: str = Field(min_length=3, max_length=64, pattern=r'^[A-Za-z0-9_\-]+$')
    password: str = Field(min_length=8)
    nickname: Optional[str] = Field(None, max_length=64)
    email: Optional[str] = Field(None, max_length=255)


class UserRead(BaseModel):
    id: int
    name: str
    nickname: Optional[str] = None
    email: Optional[str] = None
    role: UserRole
    status: UserStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoginRequest(BaseModel):
    name: str
    password: str


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    refresh_token: str


class ProfileUpdate(BaseModel):
    nickname: Optional[str] = Field(None, max_length=64)
    email: Optional[str] = Field(None, max_length=255)

    @field_validator("nickname", "email")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email address")
        return value


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class BatchSummary(BaseModel):
    id: int
    description: str
    status: BatchStatus
    created_at: Optional[datetime] = None
    edit_count: int = 0


class UserStats(BaseModel):
    batches_count: int
    pull_requests_count: int
    batches_by_status: Dict[str, int] = {}
    pull_requests_by_status: Dict[str, int] = {}
    recent_batches: List[BatchSummary] = []


class SiteStats(BaseModel):
    total_phrases: int
    total_issues: int
    total_users: int
    total_pull_requests: int
    total_batches: int
    pending_sync_batches: int
    synced_batches: int
    phrases_by_type: Dict[str, int] = {}
    batches_by_status: Dict[str, int] = {}
    recent_submitted_batches: int = 0
    recent_approved_batches: int = 0
