"""Core HR router — User and Department API endpoints.

Routes:
    /users                          — List active users (approvers), create (admin)
    /users/me                       — Own profile, self-service edit
    /users/managers                 — Users who can approve leave
    /users/department/{id}          — Active users of one department
    /users/{id}                     — Get, update, deactivate a user
    /departments                    — List, create departments
    /departments/{id}               — Get, update, deactivate a department
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_permission, require_role
from leavedesk.common.constants import UserRole
from leavedesk.common.pagination import PaginatedResponse, PaginationParams
from leavedesk.core_hr.models import Employee
from leavedesk.core_hr.schemas import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    ProfileUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from leavedesk.core_hr.service import DepartmentService, UserService
from leavedesk.database import get_db


# ═════════════════════════════════════════════════════════════════════
# Routers
# ═════════════════════════════════════════════════════════════════════

users_router = APIRouter(prefix="", tags=["users"])
departments_router = APIRouter(prefix="", tags=["departments"])


# ═════════════════════════════════════════════════════════════════════
# User Endpoints
# ═════════════════════════════════════════════════════════════════════


# ── GET /users: list users ─────────────────────────────────────────

@users_router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    department_id: Optional[uuid.UUID] = Query(None),
    role: Optional[UserRole] = Query(None),
    sort: Optional[str] = Query(None, description="Column name, '-' prefix for DESC"),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.coordinator, UserRole.admin)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Paginated list of active users."""
    return await UserService.list_users(
        db, pagination, department_id=department_id, role=role, sort=sort,
    )


# ── POST /users ─────────────────────────────────────────────────────

@users_router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    employee: Employee = Depends(require_permission("profile:create")),
    db: AsyncSession = Depends(get_db),
):
    """Create an employee account (admin only)."""
    return await UserService.create_user(db, body, employee)


# ── GET/PUT /users/me ───────────────────────────────────────────────

@users_router.get("/me", response_model=UserResponse)
async def get_own_profile(
    employee: Employee = Depends(get_current_user),
):
    return UserResponse.model_validate(employee)


@users_router.put("/me", response_model=UserResponse)
async def update_own_profile(
    body: ProfileUpdate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Change your own name, phone or position."""
    return await UserService.update_profile(db, employee, body)


# ── GET /users/managers ─────────────────────────────────────────────
# Literal paths are registered before /{user_id}.

@users_router.get("/managers", response_model=list[UserResponse])
async def list_managers(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active managers, coordinators and admins."""
    return await UserService.list_managers(db)


# ── GET /users/department/{department_id} ───────────────────────────

@users_router.get("/department/{department_id}", response_model=list[UserResponse])
async def list_department_users(
    department_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active users of one department."""
    return await UserService.list_department_users(db, department_id)


# ── GET /users/{id} ─────────────────────────────────────────────────

@users_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """A user's profile: own profile, or any profile for approvers."""
    return await UserService.get_user_for(db, user_id, employee)


# ── PUT /users/{id} ─────────────────────────────────────────────────

@users_router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    employee: Employee = Depends(require_role(UserRole.manager, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Partial-update a user (admin, or manager for non-admin users)."""
    return await UserService.update_user(db, user_id, body, employee)


# ── DELETE /users/{id} ──────────────────────────────────────────────

@users_router.delete("/{user_id}")
async def deactivate_user(
    user_id: uuid.UUID,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a user account (admin only)."""
    await UserService.deactivate_user(db, user_id, employee)
    return {"message": "User deactivated successfully"}


# ═════════════════════════════════════════════════════════════════════
# Department Endpoints
# ═════════════════════════════════════════════════════════════════════


@departments_router.get("", response_model=list[DepartmentResponse])
async def list_departments(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List active departments."""
    return await DepartmentService.list_departments(db)


@departments_router.get("/{department_id}", response_model=DepartmentResponse)
async def get_department(
    department_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Department detail with coordinator and active headcount."""
    return await DepartmentService.get_department(db, department_id)


@departments_router.post("", response_model=DepartmentResponse, status_code=201)
async def create_department(
    body: DepartmentCreate,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Create a department (admin only)."""
    return await DepartmentService.create_department(db, body, employee)


@departments_router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentUpdate,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Update a department (admin only)."""
    return await DepartmentService.update_department(db, department_id, body, employee)


@departments_router.delete("/{department_id}")
async def deactivate_department(
    department_id: uuid.UUID,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a department with no active users (admin only)."""
    await DepartmentService.deactivate_department(db, department_id, employee)
    return {"message": "Department deactivated successfully"}
