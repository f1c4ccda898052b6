"""Tests for common utilities — filters, sorting, pagination, audit, roles."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import has_role
from leavedesk.common.audit import create_audit_entry, get_audit_history
from leavedesk.common.constants import UserRole
from leavedesk.common.filters import _get_column, apply_filters, apply_sorting
from leavedesk.common.pagination import build_meta, paginate
from leavedesk.config import settings
from leavedesk.core_hr.models import Employee
from tests.conftest import _make_employee, _seed_employee, auth_headers


# ═════════════════════════════════════════════════════════════════════
# FILTER TESTS
# ═════════════════════════════════════════════════════════════════════


class TestApplyFilters:

    async def test_filter_by_equality(self, db: AsyncSession):
        await _seed_employee(db, name="Alice")
        await _seed_employee(db, name="Bob")

        query = apply_filters(select(Employee), Employee, {"name": "Alice"})
        employees = (await db.execute(query)).scalars().all()
        assert [e.name for e in employees] == ["Alice"]

    async def test_none_values_skipped(self, db: AsyncSession):
        await _seed_employee(db, name="Solo")

        query = apply_filters(select(Employee), Employee, {"name": None, "is_active": True})
        assert len((await db.execute(query)).scalars().all()) == 1

    async def test_filter_by_in(self, db: AsyncSession):
        await _seed_employee(db, name="Alice", role=UserRole.manager)
        await _seed_employee(db, name="Bob")
        await _seed_employee(db, name="Carol", role=UserRole.admin)

        query = apply_filters(
            select(Employee), Employee,
            {"role__in": [UserRole.manager, UserRole.admin]},
        )
        names = {e.name for e in (await db.execute(query)).scalars().all()}
        assert names == {"Alice", "Carol"}

    async def test_filter_by_from_to_range(self, db: AsyncSession):
        for name in ("A", "B", "C", "D"):
            await _seed_employee(db, name=name)

        query = apply_filters(
            select(Employee), Employee, {"name__from": "B", "name__to": "C"},
        )
        names = sorted(e.name for e in (await db.execute(query)).scalars().all())
        assert names == ["B", "C"]

    async def test_unknown_column_ignored(self, db: AsyncSession):
        await _seed_employee(db)
        query = apply_filters(select(Employee), Employee, {"nonexistent_field": "x"})
        assert len((await db.execute(query)).scalars().all()) == 1


class TestApplySorting:

    async def test_sort_ascending_and_descending(self, db: AsyncSession):
        for name in ("Charlie", "Alice", "Bob"):
            await _seed_employee(db, name=name)

        asc = (await db.execute(apply_sorting(select(Employee), Employee, "name"))).scalars().all()
        assert [e.name for e in asc] == ["Alice", "Bob", "Charlie"]

        desc = (await db.execute(apply_sorting(select(Employee), Employee, "-name"))).scalars().all()
        assert [e.name for e in desc] == ["Charlie", "Bob", "Alice"]

    def test_none_is_no_op(self):
        query = select(Employee)
        assert apply_sorting(query, Employee, None) is query

    async def test_unknown_column_uses_default(self, db: AsyncSession):
        for name in ("Zed", "Amy"):
            await _seed_employee(db, name=name)

        query = apply_sorting(select(Employee), Employee, "bogus", default="name")
        names = [e.name for e in (await db.execute(query)).scalars().all()]
        assert names == ["Amy", "Zed"]

    def test_unknown_column_without_default(self):
        query = select(Employee)
        assert apply_sorting(query, Employee, "bogus") is query


class TestGetColumn:

    def test_existing_column(self):
        assert _get_column(Employee, "employee_code") is not None

    def test_missing_column(self):
        assert _get_column(Employee, "totally_fake_column") is None

    def test_property_is_not_a_column(self):
        assert _get_column(Employee, "is_approver") is None


# ═════════════════════════════════════════════════════════════════════
# PAGINATION TESTS
# ═════════════════════════════════════════════════════════════════════


class TestPagination:

    def test_build_meta(self):
        meta = build_meta(page=2, page_size=3, total=7)
        assert meta.total_pages == 3
        assert meta.has_next is True
        assert meta.has_prev is True

    def test_build_meta_empty(self):
        meta = build_meta(page=1, page_size=10, total=0)
        assert meta.total_pages == 0
        assert meta.has_next is False

    async def test_paginate_windows(self, db: AsyncSession):
        for i in range(5):
            await _seed_employee(db, name=f"P{i}")

        query = select(Employee).order_by(Employee.name)
        rows, meta = await paginate(db, query, 2, 3)
        assert [e.name for e in rows] == ["P3", "P4"]
        assert meta.total == 5
        assert meta.has_next is False
        assert meta.has_prev is True

    async def test_paginate_empty(self, db: AsyncSession):
        rows, meta = await paginate(
            db, select(Employee).where(Employee.name == "nobody"), 1, 10,
        )
        assert rows == []
        assert meta.total == 0


# ═════════════════════════════════════════════════════════════════════
# AUDIT TRAIL
# ═════════════════════════════════════════════════════════════════════


class TestAuditTrail:

    async def test_entries_scoped_to_entity(self, db: AsyncSession):
        actor = await _seed_employee(db, name="Auditor", role=UserRole.admin)
        target = uuid.uuid4()

        await create_audit_entry(
            db, action="provision", entity_type="leave_balance",
            entity_id=target, actor_id=actor.id, new_values={"total_allocated": 5},
        )
        await create_audit_entry(
            db, action="provision", entity_type="leave_balance",
            entity_id=uuid.uuid4(), actor_id=actor.id,
        )

        history = await get_audit_history(db, "leave_balance", target)
        assert len(history) == 1
        assert history[0].new_values == {"total_allocated": 5}
        assert history[0].actor_id == actor.id


# ═════════════════════════════════════════════════════════════════════
# ROLES
# ═════════════════════════════════════════════════════════════════════


class TestRoleHierarchy:

    @pytest.mark.parametrize(
        "role, allowed, expected",
        [
            (UserRole.admin, (UserRole.manager,), True),
            (UserRole.admin, (UserRole.coordinator,), True),
            (UserRole.manager, (UserRole.employee,), True),
            (UserRole.manager, (UserRole.coordinator,), False),
            (UserRole.coordinator, (UserRole.manager,), False),
            (UserRole.employee, (UserRole.manager, UserRole.admin), False),
        ],
    )
    def test_has_role(self, role, allowed, expected):
        emp = Employee(**_make_employee(role=role))
        assert has_role(emp, *allowed) is expected


# ═════════════════════════════════════════════════════════════════════
# APP
# ═════════════════════════════════════════════════════════════════════


class TestHealth:

    async def test_health_check(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestDefaultRateLimit:

    async def test_middleware_installed(self, app):
        assert any(m.cls is SlowAPIMiddleware for m in app.user_middleware)

    async def test_default_limit_enforced(self, client: AsyncClient):
        allowed = int(settings.RATE_LIMIT_DEFAULT.split("/")[0])
        for _ in range(allowed):
            assert (await client.get("/api/v1/health")).status_code == 200

        resp = await client.get("/api/v1/health")
        assert resp.status_code == 429

    async def test_limits_are_per_token(
        self, client: AsyncClient, db: AsyncSession, employee, manager,
    ):
        await db.commit()
        headers = auth_headers(employee)
        allowed = int(settings.RATE_LIMIT_DEFAULT.split("/")[0])
        for _ in range(allowed):
            await client.get("/api/v1/users/me", headers=headers)

        blocked = await client.get("/api/v1/users/me", headers=headers)
        assert blocked.status_code == 429

        other = await client.get("/api/v1/users/me", headers=auth_headers(manager))
        assert other.status_code == 200
