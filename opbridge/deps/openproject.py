from __future__ import annotations

from typing import AsyncIterator

from fastapi import Depends, HTTPException, status

from ..services.openproject import OpenProjectClient
from .auth import AuthContext, require_user


async def get_openproject_client(auth: AuthContext = Depends(require_user)) -> AsyncIterator[OpenProjectClient]:
    """Yield a client bound to the signed-in user's own OpenProject token."""

    if not auth.api_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="OpenProject token not found for this user",
        )
    client = OpenProjectClient.from_settings(auth.api_token)
    try:
        yield client
    finally:
        await client.aclose()
