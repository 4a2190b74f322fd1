from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import AppUser
from app.auth.security import decode_access_token
from app.common.exceptions import InvalidTokenException
from app.database import get_db

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AppUser:
    token = credentials.credentials
    payload = decode_access_token(token)

    if not payload:
        raise InvalidTokenException()

    user_id = int(payload["sub"])
    token_version = payload.get("tv", 0)

    user = await db.get(AppUser, user_id)

    if not user:
        raise InvalidTokenException()

    # Check token version (for logout-all functionality)
    if user.token_version != token_version:
        raise InvalidTokenException()

    return user


# Type aliases for cleaner route signatures
CurrentUser = Annotated[AppUser, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
