"""Core HR service layer — user and department management.

Uses:
  - ``paginate()`` from leavedesk.common.pagination
  - ``apply_filters / apply_sorting`` from leavedesk.common.filters
  - ``create_audit_entry`` from leavedesk.common.audit
  - ``NotFoundException / DuplicateException`` from leavedesk.common.exceptions
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.audit import create_audit_entry
from leavedesk.common.constants import APPROVER_ROLES, UserRole
from leavedesk.common.exceptions import (
    ConflictError,
    DuplicateException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.filters import apply_filters, apply_sorting
from leavedesk.common.pagination import PaginatedResponse, PaginationParams, paginate
from leavedesk.core_hr.models import Department, Employee
from leavedesk.core_hr.schemas import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    ProfileUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)

logger = logging.getLogger(__name__)


def _audit_value(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


# ═════════════════════════════════════════════════════════════════════
# UserService
# ═════════════════════════════════════════════════════════════════════


class UserService:
    """Async operations on employee accounts."""

    @staticmethod
    def _with_relations(query):
        return query.options(
            selectinload(Employee.department),
            selectinload(Employee.manager),
        )

    # ── List (paginated, filterable) ────────────────────────────────

    @staticmethod
    async def list_users(
        db: AsyncSession,
        pagination: PaginationParams,
        *,
        department_id: Optional[uuid.UUID] = None,
        role: Optional[UserRole] = None,
        sort: Optional[str] = None,
    ) -> PaginatedResponse[UserResponse]:
        """Active users, sorted by name unless *sort* says otherwise."""

        query = UserService._with_relations(
            select(Employee).where(Employee.is_active.is_(True))
        )
        query = apply_filters(
            query, Employee, {"department_id": department_id, "role": role},
        )
        query = apply_sorting(query, Employee, sort, default="name")

        rows, meta = await paginate(db, query, pagination.page, pagination.page_size)
        return PaginatedResponse[UserResponse](
            data=[UserResponse.model_validate(e) for e in rows],
            meta=meta,
        )

    # ── Get single ──────────────────────────────────────────────────

    @staticmethod
    async def get_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> Employee:
        result = await db.execute(
            UserService._with_relations(select(Employee).where(Employee.id == user_id))
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("User", str(user_id))
        return employee

    @staticmethod
    async def get_user_for(
        db: AsyncSession,
        user_id: uuid.UUID,
        viewer: Employee,
    ) -> UserResponse:
        """A profile is visible to its owner and to approvers."""
        employee = await UserService.get_user(db, user_id)
        if viewer.id != employee.id and not viewer.is_approver:
            raise ForbiddenException("Access denied.")
        return UserResponse.model_validate(employee)

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_user(
        db: AsyncSession,
        data: UserCreate,
        actor: Employee,
    ) -> UserResponse:
        """Add an employee record; email and employee code must be unused."""

        for field, column in (("email", Employee.email), ("employee_code", Employee.employee_code)):
            value = getattr(data, field)
            clash = await db.execute(select(Employee.id).where(column == value))
            if clash.scalar() is not None:
                raise DuplicateException(field, value)

        if data.manager_id is not None:
            manager = await UserService.get_user(db, data.manager_id)
            if not manager.is_active:
                raise ValidationException({"manager_id": ["Manager account is inactive."]})

        if data.department_id is not None:
            await DepartmentService.get_department(db, data.department_id)

        now = datetime.now(timezone.utc)
        employee = Employee(
            **data.model_dump(),
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(employee)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor.id,
            new_values={k: _audit_value(v) for k, v in data.model_dump().items()},
        )

        logger.info("User %s (%s) created by %s", employee.employee_code,
                    employee.role.value, actor.employee_code)
        return UserResponse.model_validate(await UserService._reload(db, employee.id))

    # ── Own profile ─────────────────────────────────────────────────

    @staticmethod
    async def update_profile(
        db: AsyncSession,
        employee: Employee,
        data: ProfileUpdate,
    ) -> UserResponse:
        """Self-service edit of name, phone and position."""
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationException({"name": ["Name cannot be blank."]})

        if changes:
            old_values = {field: getattr(employee, field) for field in changes}
            for field, value in changes.items():
                setattr(employee, field, value)
            employee.updated_at = datetime.now(timezone.utc)
            await db.flush()

            await create_audit_entry(
                db,
                action="update",
                entity_type="employee",
                entity_id=employee.id,
                actor_id=employee.id,
                old_values=old_values,
                new_values=changes,
            )
            logger.info("User %s updated their profile: %s",
                        employee.employee_code, ", ".join(sorted(changes)))

        return UserResponse.model_validate(await UserService._reload(db, employee.id))

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: UserUpdate,
        actor: Employee,
    ) -> UserResponse:
        """Partial-update a user. Managers may not edit admins."""

        employee = await UserService.get_user(db, user_id)

        if actor.role == UserRole.manager and employee.role == UserRole.admin:
            raise ForbiddenException("Insufficient permissions.")

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return UserResponse.model_validate(employee)

        if "email" in changes and changes["email"] != employee.email:
            clash = await db.execute(
                select(Employee.id).where(Employee.email == changes["email"])
            )
            if clash.scalar() is not None:
                raise DuplicateException("email", changes["email"])

        if changes.get("manager_id") is not None:
            if changes["manager_id"] == employee.id:
                raise ValidationException({"manager_id": ["A user cannot manage themselves."]})
            await UserService.get_user(db, changes["manager_id"])

        if changes.get("department_id") is not None:
            await DepartmentService.get_department(db, changes["department_id"])

        old_values: dict[str, Any] = {}
        for field, value in changes.items():
            old_values[field] = _audit_value(getattr(employee, field, None))
            setattr(employee, field, value)

        employee.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={k: _audit_value(v) for k, v in changes.items()},
        )

        # Relationships may point elsewhere now
        employee = await UserService._reload(db, employee.id)
        logger.info("User %s updated by %s: %s", employee.employee_code,
                    actor.employee_code, ", ".join(sorted(changes)))
        return UserResponse.model_validate(employee)

    @staticmethod
    async def _reload(db: AsyncSession, user_id: uuid.UUID) -> Employee:
        result = await db.execute(
            UserService._with_relations(select(Employee).where(Employee.id == user_id))
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    # ── Deactivate ──────────────────────────────────────────────────

    @staticmethod
    async def deactivate_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        actor: Employee,
    ) -> None:
        employee = await UserService.get_user(db, user_id)
        if not employee.is_active:
            return

        employee.is_active = False
        employee.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="deactivate",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor.id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        logger.info("User %s deactivated by %s", employee.employee_code, actor.employee_code)

    # ── Approvers / department members ──────────────────────────────

    @staticmethod
    async def list_managers(db: AsyncSession) -> Sequence[Employee]:
        """Active users who can approve leave (manager, coordinator, admin)."""
        result = await db.execute(
            UserService._with_relations(
                select(Employee).where(
                    Employee.role.in_(APPROVER_ROLES),
                    Employee.is_active.is_(True),
                )
            ).order_by(Employee.name)
        )
        return result.scalars().all()

    @staticmethod
    async def list_department_users(
        db: AsyncSession,
        department_id: uuid.UUID,
    ) -> Sequence[Employee]:
        result = await db.execute(
            UserService._with_relations(
                select(Employee).where(
                    Employee.department_id == department_id,
                    Employee.is_active.is_(True),
                )
            ).order_by(Employee.name)
        )
        return result.scalars().all()


# ═════════════════════════════════════════════════════════════════════
# DepartmentService
# ═════════════════════════════════════════════════════════════════════


class DepartmentService:
    """Async CRUD operations for departments."""

    @staticmethod
    async def _to_response(db: AsyncSession, dept: Department) -> DepartmentResponse:
        count_result = await db.execute(
            select(func.count())
            .select_from(Employee)
            .where(
                Employee.department_id == dept.id,
                Employee.is_active.is_(True),
            )
        )
        resp = DepartmentResponse.model_validate(dept)
        resp.employee_count = count_result.scalar() or 0
        return resp

    @staticmethod
    async def _load(db: AsyncSession, department_id: uuid.UUID, *, refresh: bool = False) -> Department:
        query = (
            select(Department)
            .where(Department.id == department_id)
            .options(selectinload(Department.coordinator))
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        dept = result.scalars().first()
        if dept is None:
            raise NotFoundException("Department", str(department_id))
        return dept

    @staticmethod
    async def _ensure_unique_name(
        db: AsyncSession,
        name: str,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Department.id).where(Department.name == name)
        if exclude_id is not None:
            query = query.where(Department.id != exclude_id)
        if (await db.execute(query)).scalar() is not None:
            raise DuplicateException("name", name)

    @staticmethod
    async def _ensure_coordinator(db: AsyncSession, coordinator_id: uuid.UUID) -> None:
        result = await db.execute(
            select(Employee.id).where(Employee.id == coordinator_id)
        )
        if result.scalar() is None:
            raise ValidationException({"coordinator_id": ["Coordinator not found."]})

    # ── List / get ──────────────────────────────────────────────────

    @staticmethod
    async def list_departments(db: AsyncSession) -> list[DepartmentResponse]:
        """Active departments sorted by name."""
        result = await db.execute(
            select(Department)
            .where(Department.is_active.is_(True))
            .options(selectinload(Department.coordinator))
            .order_by(Department.name)
        )
        return [
            await DepartmentService._to_response(db, d)
            for d in result.scalars().all()
        ]

    @staticmethod
    async def get_department(
        db: AsyncSession,
        department_id: uuid.UUID,
    ) -> DepartmentResponse:
        dept = await DepartmentService._load(db, department_id)
        return await DepartmentService._to_response(db, dept)

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_department(
        db: AsyncSession,
        data: DepartmentCreate,
        actor: Employee,
    ) -> DepartmentResponse:
        await DepartmentService._ensure_unique_name(db, data.name)
        if data.coordinator_id is not None:
            await DepartmentService._ensure_coordinator(db, data.coordinator_id)

        dept = Department(
            name=data.name,
            description=data.description,
            coordinator_id=data.coordinator_id,
            is_active=True,
        )
        db.add(dept)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="department",
            entity_id=dept.id,
            actor_id=actor.id,
            new_values=data.model_dump(mode="json"),
        )
        logger.info("Department %r created by %s", dept.name, actor.employee_code)

        dept = await DepartmentService._load(db, dept.id, refresh=True)
        return await DepartmentService._to_response(db, dept)

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_department(
        db: AsyncSession,
        department_id: uuid.UUID,
        data: DepartmentUpdate,
        actor: Employee,
    ) -> DepartmentResponse:
        dept = await DepartmentService._load(db, department_id)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return await DepartmentService._to_response(db, dept)

        if changes.get("name") and changes["name"] != dept.name:
            await DepartmentService._ensure_unique_name(
                db, changes["name"], exclude_id=dept.id,
            )
        if changes.get("coordinator_id") is not None:
            await DepartmentService._ensure_coordinator(db, changes["coordinator_id"])

        old_values: dict[str, Any] = {}
        for field, value in changes.items():
            old_values[field] = _audit_value(getattr(dept, field, None))
            setattr(dept, field, value)
        dept.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="department",
            entity_id=dept.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={k: _audit_value(v) for k, v in changes.items()},
        )

        dept = await DepartmentService._load(db, dept.id, refresh=True)
        return await DepartmentService._to_response(db, dept)

    # ── Deactivate ──────────────────────────────────────────────────

    @staticmethod
    async def deactivate_department(
        db: AsyncSession,
        department_id: uuid.UUID,
        actor: Employee,
    ) -> None:
        """Refused while the department still has active users."""
        dept = await DepartmentService._load(db, department_id)

        active = await db.execute(
            select(func.count())
            .select_from(Employee)
            .where(
                Employee.department_id == dept.id,
                Employee.is_active.is_(True),
            )
        )
        active_users = active.scalar() or 0
        if active_users:
            raise ConflictError(
                f"Cannot deactivate department with {active_users} active user(s).",
                errors={"department": ["has active users"]},
            )

        dept.is_active = False
        dept.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="deactivate",
            entity_type="department",
            entity_id=dept.id,
            actor_id=actor.id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        logger.info("Department %r deactivated by %s", dept.name, actor.employee_code)
