"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from kho.core.security import decode_access_token
from kho.schemas.voucher import Actor
from kho.services.voucher import VoucherLifecycleManager

# Security scheme
security = HTTPBearer(auto_error=False)


def get_voucher_manager(request: Request) -> VoucherLifecycleManager:
    """
    The process-wide manager created in the application lifespan.
    """
    manager = getattr(request.app.state, "voucher_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Voucher service is not ready"
        )
    return manager


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Get the calling user from the bearer token.
    """
    payload = decode_access_token(credentials.credentials) if credentials else None
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(username=payload["sub"], role=payload.get("role") or "")
