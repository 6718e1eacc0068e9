"""JWT issue / verify utilities (access & refresh tokens)"""
from datetime import datetime, timedelta
from typing import Dict, Any

import jwt

from keytao.config.settings import get_settings

ALGORITHM = "HS256"


def _build_payload(subject: str, expires_minutes: int, scopes: list[str] | None = None) -> Dict[str, Any]:
    return {
        "sub": subject,
        "scopes": scopes or [],
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + timedelta(minutes=expires_minutes),
    }


def create_access_token(subject: str, scopes: list[str] | None = None, expires_minutes: int | None = None) -> str:
    security = get_settings().security
    minutes = expires_minutes or security.access_token_minutes
    return jwt.encode(_build_payload(subject, minutes, scopes), security.jwt_secret, algorithm=ALGORITHM)


def create_refresh_token(subject: str, expires_minutes: int | None = None) -> str:
    security = get_settings().security
    minutes = expires_minutes or security.refresh_token_minutes
    return jwt.encode(_build_payload(subject, minutes), security.refresh_secret, algorithm=ALGORITHM)


def decode_token(token: str, refresh: bool = False) -> Dict[str, Any] | None:
    security = get_settings().security
    secret = security.refresh_secret if refresh else security.jwt_secret
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
