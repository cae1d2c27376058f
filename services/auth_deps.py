"""
Auth dependencies for OptiLedger

Resolves the tenant for a request. Token validation happens upstream;
by the time a request reaches this service the gateway has set the
X-User-Id header.
"""

from typing import Optional
from fastapi import Header, HTTPException, status
from models.user import UserContext


async def get_user_context(x_user_id: Optional[str] = Header(default=None)) -> UserContext:
    """Get the tenant the request acts for"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user context",
        )
    return UserContext(user_id=x_user_id.strip())
