"""
Shared route dependencies: acting user, workflow collaborators, and
Result -> HTTP translation.
"""
import uuid
from typing import Optional, TypeVar

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.core.errors import Result
from auditflow.db import get_db
from auditflow.db.models import User
from auditflow.workflow.base import Collaborators

T = TypeVar("T")


async def get_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the acting user from the X-User-Id header.

    Sessions are handled upstream; this only maps the id to an active user.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user id format")

    result = await db.execute(
        select(User).where(User.id == user_id).where(User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")
    return user


def get_collaborators(request: Request) -> Collaborators:
    """Collaborators built by the application lifespan."""
    return request.app.state.collaborators


# Dependency to protect routes
require_actor = Depends(get_actor)


def unwrap_or_http(result: Result[T]) -> T:
    """Return the value of a successful Result, or raise the matching HTTPException."""
    if result.ok:
        return result.value
    raise HTTPException(status_code=result.error.status_code, detail=result.error.to_dict())
