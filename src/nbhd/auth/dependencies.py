"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.jwt import verify_token
from nbhd.database import get_session
from nbhd.db.models import User
from nbhd.errors import Unauthorized

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Extract and verify the bearer JWT, return the User it names."""
    if credentials is None:
        raise Unauthorized("Missing bearer token")
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise Unauthorized(str(e)) from e

    user = await db.get(User, int(payload["sub"]))
    if user is None:
        raise Unauthorized("User not found")
    return user
