"""
Security utilities for Kho
Bearer token encoding and decoding. Tokens are issued by the login service;
this side only needs to read the username and role they carry.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt

from kho.core.config import settings
from kho.core.exceptions import InsufficientPermissionsError


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a JWT; returns None for invalid, expired or subject-less tokens"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


def check_role(role: str, allowed_roles, action: str) -> None:
    """Raise InsufficientPermissionsError unless role is one of allowed_roles"""
    if role not in allowed_roles:
        raise InsufficientPermissionsError(
            f"Bạn không có quyền {action} phiếu",
            detail=f"Role '{role}' not allowed. Required one of: {', '.join(allowed_roles)}",
        )
