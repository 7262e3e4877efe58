"""Stub bearer auth dependency.

The bearer token is taken verbatim as the user id (the identity provider's
subject). Requests without an Authorization header run as the configured dev
user. Real JWT verification belongs in front of this service.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from gapguard.config import Settings, get_settings
from gapguard.db.context import RequestContext


async def get_current_context(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Args:
        settings: Application settings (dev user id)
        authorization: Authorization header (e.g., "Bearer <user_id>")

    Returns:
        RequestContext with user_id

    Raises:
        HTTPException: If authorization is malformed
    """
    if not authorization:
        return RequestContext(user_id=settings.dev_user_id)

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = authorization[7:].strip()  # Strip "Bearer "
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Empty bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RequestContext(user_id=user_id)
