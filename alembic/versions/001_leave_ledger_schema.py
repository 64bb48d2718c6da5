"""001 – Leave ledger schema: employees, roles, leave types, balances, requests.

Revision ID: 001_leave_ledger_schema
Revises:
Create Date: 2026-10-17 10:30:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_leave_ledger_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "hr_admin", "system_admin"]),
    (
        "leave_status",
        ["draft", "pending", "approved", "rejected", "cancelled", "processed"],
    ),
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

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code        VARCHAR(20)  NOT NULL UNIQUE,
            first_name           VARCHAR(100) NOT NULL,
            last_name            VARCHAR(100) NOT NULL,
            email                VARCHAR(255) NOT NULL UNIQUE,
            reporting_manager_id UUID REFERENCES employees(id),
            date_of_joining      DATE NOT NULL,
            is_active            BOOLEAN DEFAULT TRUE,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX idx_employees_manager ON employees(reporting_manager_id)
    """)

    # ── 2. role_assignments ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE role_assignments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            role        user_role NOT NULL,
            assigned_by UUID REFERENCES employees(id),
            assigned_at TIMESTAMPTZ DEFAULT NOW(),
            revoked_at  TIMESTAMPTZ,
            is_active   BOOLEAN DEFAULT TRUE
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_role_active
            ON role_assignments(employee_id, role)
            WHERE is_active = TRUE
    """)

    # ── 3. holidays ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE holidays (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            date        DATE NOT NULL UNIQUE,
            name        VARCHAR(100) NOT NULL,
            is_optional BOOLEAN DEFAULT FALSE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 4. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                       UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code                     VARCHAR(20)  NOT NULL UNIQUE,
            name                     VARCHAR(100) NOT NULL,
            description              TEXT,
            is_paid                  BOOLEAN DEFAULT TRUE,
            accrues                  BOOLEAN DEFAULT FALSE,
            excludes_weekends        BOOLEAN DEFAULT TRUE,
            excludes_holidays        BOOLEAN DEFAULT TRUE,
            default_entitlement      NUMERIC(5,1) NOT NULL DEFAULT 0,
            min_days_notice          INTEGER DEFAULT 0,
            max_consecutive_days     INTEGER,
            blocked_during_probation BOOLEAN DEFAULT FALSE,
            is_active                BOOLEAN DEFAULT TRUE,
            created_at               TIMESTAMPTZ DEFAULT NOW(),
            updated_at               TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id   UUID NOT NULL REFERENCES employees(id),
            leave_type_id UUID NOT NULL REFERENCES leave_types(id),
            year          INTEGER NOT NULL,
            entitlement   NUMERIC(5,1) NOT NULL DEFAULT 0,
            accrued       NUMERIC(5,1) NOT NULL DEFAULT 0,
            used          NUMERIC(5,1) NOT NULL DEFAULT 0,
            pending       NUMERIC(5,1) NOT NULL DEFAULT 0,
            updated_at    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_used CHECK (used >= 0),
            CONSTRAINT ck_leave_balance_pending CHECK (pending >= 0),
            CONSTRAINT ck_leave_balance_within_accrued CHECK (used + pending <= accrued)
        )
    """)

    # ── 6. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            leave_type_id    UUID NOT NULL REFERENCES leave_types(id),
            year             INTEGER NOT NULL,
            start_date       DATE NOT NULL,
            end_date         DATE NOT NULL,
            total_days       NUMERIC(5,1) NOT NULL,
            day_details      JSONB NOT NULL,
            reason           TEXT,
            status           leave_status NOT NULL DEFAULT 'pending',
            created_by       UUID REFERENCES employees(id),
            submitted_at     TIMESTAMPTZ,
            reviewed_by      UUID REFERENCES employees(id),
            reviewed_at      TIMESTAMPTZ,
            reviewer_remarks TEXT,
            rejection_reason TEXT,
            cancelled_by     UUID REFERENCES employees(id),
            cancelled_at     TIMESTAMPTZ,
            processed_at     TIMESTAMPTZ,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_range CHECK (end_date >= start_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_dates
            ON leave_requests(employee_id, start_date, end_date)
    """)
    op.execute("""
        CREATE INDEX idx_leave_req_status ON leave_requests(status)
    """)

    # ── Seed data ─────────────────────────────────────────────────────────
    # Leave types
    op.execute("""
        INSERT INTO leave_types
            (code, name, description, is_paid, accrues, excludes_weekends,
             excludes_holidays, default_entitlement, min_days_notice,
             max_consecutive_days, blocked_during_probation)
        VALUES
            ('pto',         'Paid Time Off',    'Planned personal time off',               TRUE,  FALSE, TRUE,  TRUE,  12, 3,   NULL, TRUE),
            ('sick',        'Sick Leave',       'Illness or medical appointments',         TRUE,  FALSE, TRUE,  TRUE,   6, 0,      7, FALSE),
            ('lop',         'Loss of Pay',      'Unpaid leave; granted by HR adjustment',  FALSE, FALSE, TRUE,  TRUE,   0, 0,   NULL, FALSE),
            ('comp-off',    'Comp Off',         'Earned for extra days worked',            TRUE,  TRUE,  TRUE,  TRUE,   0, 1,      2, FALSE),
            ('maternity',   'Maternity Leave',  'Charged on calendar days',                TRUE,  FALSE, FALSE, FALSE, 90, 30,    90, FALSE),
            ('paternity',   'Paternity Leave',  'Leave around the birth of a child',       TRUE,  FALSE, TRUE,  TRUE,   7, 7,      7, FALSE),
            ('bereavement', 'Bereavement',      'Loss of a family member',                 TRUE,  FALSE, TRUE,  TRUE,   3, 0,      3, FALSE)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "leave_requests",
        "leave_balances",
        "leave_types",
        "holidays",
        "role_assignments",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
