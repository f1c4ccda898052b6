"""001 – Initial schema: users, departments, leave ledger, requests, notifications, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "coordinator", "admin"]),
    (
        "leave_type",
        ["sick", "vacation", "personal", "emergency", "maternity", "paternity", "other"],
    ),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("approval_status", ["pending", "approved", "rejected"]),
    ("notification_template", ["leave_request", "leave_approval"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. departments (coordinator FK added after employees) ─────────────
    op.execute("""
        CREATE TABLE departments (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name            VARCHAR(150) NOT NULL UNIQUE,
            description     TEXT,
            coordinator_id  UUID,
            is_active       BOOLEAN DEFAULT TRUE,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code   VARCHAR(20) NOT NULL UNIQUE,
            name            VARCHAR(200) NOT NULL,
            email           VARCHAR(255) NOT NULL UNIQUE,
            phone           VARCHAR(20),
            position        VARCHAR(150),
            role            user_role NOT NULL DEFAULT 'employee',
            department_id   UUID REFERENCES departments(id),
            manager_id      UUID REFERENCES employees(id),
            is_active       BOOLEAN DEFAULT TRUE,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_emp_department ON employees(department_id)")
    op.execute("CREATE INDEX idx_emp_manager    ON employees(manager_id)")
    op.execute("CREATE INDEX idx_emp_role       ON employees(role)")

    op.execute("""
        ALTER TABLE departments
            ADD CONSTRAINT fk_dept_coordinator
            FOREIGN KEY (coordinator_id) REFERENCES employees(id)
    """)

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            academic_year    VARCHAR(20) NOT NULL,
            leave_type       leave_type NOT NULL,
            total_allocated  INTEGER NOT NULL DEFAULT 0,
            used             INTEGER NOT NULL DEFAULT 0,
            remaining        INTEGER GENERATED ALWAYS AS (total_allocated - used) STORED,
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, academic_year, leave_type),
            CONSTRAINT ck_leave_balance_allocated CHECK (total_allocated >= 0)
        )
    """)

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                       UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id              UUID NOT NULL REFERENCES employees(id),
            leave_type               leave_type NOT NULL,
            start_date               DATE NOT NULL,
            end_date                 DATE NOT NULL,
            total_days               INTEGER NOT NULL,
            reason                   TEXT NOT NULL,
            academic_year            VARCHAR(20) NOT NULL,
            status                   leave_status NOT NULL DEFAULT 'pending',
            manager_status           approval_status NOT NULL DEFAULT 'pending',
            manager_approved_by      UUID REFERENCES employees(id),
            manager_approved_at      TIMESTAMPTZ,
            manager_comments         TEXT,
            coordinator_status       approval_status NOT NULL DEFAULT 'pending',
            coordinator_approved_by  UUID REFERENCES employees(id),
            coordinator_approved_at  TIMESTAMPTZ,
            coordinator_comments     TEXT,
            cancelled_at             TIMESTAMPTZ,
            version                  INTEGER NOT NULL DEFAULT 1,
            created_at               TIMESTAMPTZ DEFAULT NOW(),
            updated_at               TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_range CHECK (start_date < end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_year
            ON leave_requests(employee_id, academic_year)
    """)
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 5. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id     UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            recipient_email  VARCHAR(255) NOT NULL,
            template         notification_template NOT NULL,
            subject          VARCHAR(200) NOT NULL,
            message          TEXT NOT NULL,
            payload          JSONB NOT NULL DEFAULT '{}',
            entity_type      VARCHAR(50),
            entity_id        UUID,
            is_delivered     BOOLEAN DEFAULT FALSE,
            error            TEXT,
            is_read          BOOLEAN DEFAULT FALSE,
            read_at          TIMESTAMPTZ,
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX idx_notif_recipient_read
            ON notifications(recipient_id, is_read)
    """)
    op.execute("CREATE INDEX idx_notif_created ON notifications(created_at)")

    # ── 6. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_audit_trail_entity
            ON audit_trail(entity_type, entity_id)
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")

    # ══════════════════════════════════════════════════════════════════════
    # SEED DATA
    # ══════════════════════════════════════════════════════════════════════

    # A first admin so the API can be used at all; change the email on deploy.
    op.execute("""
        INSERT INTO employees (employee_code, name, email, role, position) VALUES
        ('ADMIN-001', 'Leave Desk Admin', 'admin@leavedesk.local', 'admin', 'Administrator')
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "notifications",
        "leave_requests",
        "leave_balances",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop deferred FK before dropping employees / departments
    op.execute(
        "ALTER TABLE departments DROP CONSTRAINT IF EXISTS fk_dept_coordinator"
    )
    op.execute("DROP TABLE IF EXISTS employees CASCADE")
    op.execute("DROP TABLE IF EXISTS departments CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
