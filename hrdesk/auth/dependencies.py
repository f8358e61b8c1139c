"""Auth dependencies — JWT validation, role enforcement.

Tokens are issued by the identity provider; this module only verifies them
and resolves the principal.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.auth.models import User
from hrdesk.common.constants import UserRole
from hrdesk.common.exceptions import ForbiddenException, NotFoundException
from hrdesk.config import settings
from hrdesk.database import get_db
from hrdesk.onboarding.models import Employee


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate the JWT and return the active User it names."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_active.is_(True)),
    )
    user = result.scalars().first()
    if user is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    return user


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    The role is read from the stored User, never from the token claims.
    """

    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed_roles:
            raise ForbiddenException(
                detail=f"Role '{user.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return user

    return _check


require_staff = require_role(UserRole.hr, UserRole.admin)


# ── Employee-scoped dependency ──────────────────────────────────────

async def get_current_employee(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Resolve the Employee record owned by the authenticated user."""
    result = await db.execute(select(Employee).where(Employee.user_id == user.id))
    employee = result.scalars().first()
    if employee is None:
        raise NotFoundException("Employee", f"user:{user.id}")
    return employee
