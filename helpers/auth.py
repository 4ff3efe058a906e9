from fastapi import Header, HTTPException, status
from typing import Optional


async def get_actor_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    """Return the acting user's ID forwarded by the authentication layer."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return x_user_id
