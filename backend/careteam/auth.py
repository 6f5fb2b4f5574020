"""Bearer token authentication via the auth service's session table."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from careteam.actors import Actor
from careteam.clock import utcnow
from careteam.database import get_db
from careteam.models.auth import AuthSession, AuthUser

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Validate a bearer token and resolve the user's platform role.

    Returns:
        The authenticated actor.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    token = credentials.credentials
    result = await db.execute(
        select(AuthUser.id, AuthUser.role)
        .join(AuthSession, AuthSession.userId == AuthUser.id)
        .where(
            AuthSession.token == token,
            AuthSession.expiresAt > utcnow(),
        )
    )
    row = result.one_or_none()

    if row is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    return Actor(id=row.id, role=row.role)
