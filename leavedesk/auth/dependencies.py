"""Bearer-token verification and role/permission guards.

Tokens are issued elsewhere; this service only verifies them. The token's
``sub`` is the employee id, and the employee's role is always read from the
database rather than trusted from the token.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.constants import PERMISSIONS, UserRole
from leavedesk.common.exceptions import ForbiddenException
from leavedesk.config import settings
from leavedesk.core_hr.models import Employee
from leavedesk.database import get_db

# Admin sits above both approver roles; every role includes employee
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.manager, UserRole.coordinator, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.coordinator: {UserRole.coordinator, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer" or not token:
        raise _unauthorized("Missing or invalid Authorization header.")
    return token


def decode_employee_id(token: str) -> uuid.UUID:
    """Verify signature and expiry, and return the ``sub`` claim as a UUID."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired.")
    except JWTError:
        raise _unauthorized("Invalid token.")

    if payload.get("type", "access") != "access":
        raise _unauthorized("Invalid token type.")

    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token subject.")


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """The active Employee behind the request's bearer token."""
    employee_id = decode_employee_id(_extract_bearer(request))

    employee = (
        await db.execute(
            select(Employee)
            .where(Employee.id == employee_id, Employee.is_active.is_(True))
            .options(selectinload(Employee.department), selectinload(Employee.manager))
        )
    ).scalars().first()
    if employee is None:
        raise _unauthorized("User account is inactive or not found.")

    request.state.user_role = employee.role
    return employee


def has_role(employee: Employee, *allowed_roles: UserRole) -> bool:
    effective_roles = _ROLE_HIERARCHY.get(employee.role, {employee.role})
    return bool(effective_roles.intersection(allowed_roles))


def require_role(*allowed_roles: UserRole) -> Callable:
    """Dependency factory: 403 unless the caller's role (or one it includes) is allowed."""

    async def _check(employee: Employee = Depends(get_current_user)) -> Employee:
        if not has_role(employee, *allowed_roles):
            required = ", ".join(r.value for r in allowed_roles)
            raise ForbiddenException(
                detail=f"Role '{employee.role.value}' is not permitted here (requires {required}).",
            )
        return employee

    return _check


def require_permission(permission: str) -> Callable:
    """Dependency factory: 403 unless ``PERMISSIONS`` grants *permission* to the caller's role."""

    async def _check(employee: Employee = Depends(get_current_user)) -> Employee:
        if permission not in PERMISSIONS.get(employee.role, []):
            raise ForbiddenException(
                detail=f"Permission '{permission}' is not granted to role '{employee.role.value}'.",
            )
        return employee

    return _check
