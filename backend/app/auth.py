"""Operator authentication.

Sessions are issued by the frontend's auth provider and stored in the
``session`` table. The API only checks that a bearer token belongs to an
unexpired session and derives the operator name stamped on saved results.
"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.auth import OperatorSession

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def operator_name(email: str | None) -> str:
    """Short operator name for ``enteredBy``: the email local part, or "unknown"."""
    return (email or "").split("@")[0] or "unknown"


async def find_active_session(db: AsyncSession, token: str) -> OperatorSession | None:
    """Session row for ``token`` if it exists and has not expired."""
    result = await db.execute(
        select(OperatorSession).where(
            OperatorSession.token == token,
            OperatorSession.expiresAt > datetime.now(timezone.utc),
        )
    )
    return result.scalar_one_or_none()


async def verify_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> str:
    """FastAPI dependency resolving the calling operator.

    Returns:
        The operator name.

    Raises:
        HTTPException: 401 if the token is missing, unknown, or expired.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    session = await find_active_session(db, credentials.credentials)
    if session is None:
        logger.info("Rejected unknown or expired bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    return operator_name(session.email)
