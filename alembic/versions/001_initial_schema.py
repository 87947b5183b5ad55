"""001 – Initial schema: tenants, users, leave ledger, comp-off, timesheets, outbox.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
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
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("leave_duration", ["full_day", "half_day"]),
    (
        "notification_type",
        ["leave_approval", "leave_rejection", "leave_cancellation", "comp_off_credit"],
    ),
    ("notification_category", ["general", "alert"]),
    ("outbox_channel", ["email", "in_app"]),
    ("outbox_status", ["pending", "sent", "failed"]),
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

    # ── 1. tenants ────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE tenants (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(200) NOT NULL,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 2. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id   UUID NOT NULL REFERENCES tenants(id),
            email       VARCHAR(255) NOT NULL,
            full_name   VARCHAR(200),
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_tenant_email UNIQUE (tenant_id, email)
        )
    """)
    op.execute("CREATE INDEX ix_users_tenant_id ON users (tenant_id)")

    # ── 3. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id           UUID NOT NULL REFERENCES tenants(id),
            name                VARCHAR(100) NOT NULL,
            description         TEXT,
            annual_allowance    NUMERIC(6,2) NOT NULL DEFAULT 0,
            carry_forward       BOOLEAN NOT NULL DEFAULT FALSE,
            max_carry_forward   NUMERIC(6,2),
            is_comp_off         BOOLEAN NOT NULL DEFAULT FALSE,
            is_paid             BOOLEAN NOT NULL DEFAULT TRUE,
            is_active           BOOLEAN NOT NULL DEFAULT TRUE,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_leave_types_tenant_id ON leave_types (tenant_id)")

    # ── 4. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id),
            user_id         UUID NOT NULL REFERENCES users(id),
            user_email      VARCHAR(255),
            leave_type_id   UUID NOT NULL REFERENCES leave_types(id),
            year            INTEGER NOT NULL,
            allocated       NUMERIC(6,2) NOT NULL DEFAULT 0,
            carried_over    NUMERIC(6,2) NOT NULL DEFAULT 0,
            used            NUMERIC(6,2) NOT NULL DEFAULT 0,
            pending         NUMERIC(6,2) NOT NULL DEFAULT 0,
            remaining       NUMERIC(6,2) NOT NULL DEFAULT 0,
            version         INTEGER NOT NULL DEFAULT 1,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (tenant_id, user_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_pending_non_negative CHECK (pending >= 0)
        )
    """)

    # ── 5. leaves ─────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leaves (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id           UUID NOT NULL REFERENCES tenants(id),
            user_id             UUID NOT NULL REFERENCES users(id),
            user_email          VARCHAR(255) NOT NULL,
            leave_type_id       UUID NOT NULL REFERENCES leave_types(id),
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            total_days          NUMERIC(6,2) NOT NULL,
            duration            leave_duration NOT NULL DEFAULT 'full_day',
            reason              TEXT,
            status              leave_status NOT NULL DEFAULT 'pending',
            approved_by         UUID,
            rejection_reason    TEXT,
            reviewed_at         TIMESTAMPTZ,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_dates CHECK (start_date <= end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leaves_tenant_user_status ON leaves (tenant_id, user_id, status)"
    )
    op.execute(
        "CREATE INDEX ix_leaves_tenant_email_dates "
        "ON leaves (tenant_id, user_email, start_date, end_date)"
    )

    # ── 6. comp_off_credits ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE comp_off_credits (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id),
            user_id         UUID NOT NULL REFERENCES users(id),
            user_email      VARCHAR(255) NOT NULL,
            leave_type_id   UUID REFERENCES leave_types(id),
            week_start      DATE,
            credited_days   NUMERIC(6,2) NOT NULL,
            used_days       NUMERIC(6,2) NOT NULL DEFAULT 0,
            remaining_days  NUMERIC(6,2) NOT NULL,
            reason          TEXT,
            credited_by     VARCHAR(255) NOT NULL,
            expires_at      DATE,
            is_expired      BOOLEAN NOT NULL DEFAULT FALSE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_comp_off_credit_week UNIQUE (tenant_id, user_id, week_start)
        )
    """)
    op.execute(
        "CREATE INDEX ix_comp_off_credits_tenant_user ON comp_off_credits (tenant_id, user_id)"
    )

    # ── 7. timesheets ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE timesheets (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id   UUID NOT NULL REFERENCES tenants(id),
            user_email  VARCHAR(255) NOT NULL,
            date        DATE NOT NULL,
            hours       NUMERIC(5,2) NOT NULL DEFAULT 0,
            minutes     INTEGER NOT NULL DEFAULT 0,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_timesheets_tenant_email_date ON timesheets (tenant_id, user_email, date)"
    )

    # ── 8. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id),
            recipient_email VARCHAR(255) NOT NULL,
            type            notification_type NOT NULL,
            category        notification_category NOT NULL DEFAULT 'general',
            title           VARCHAR(200) NOT NULL,
            message         TEXT NOT NULL,
            entity_type     VARCHAR(50),
            entity_id       UUID,
            sender_name     VARCHAR(200),
            is_read         BOOLEAN NOT NULL DEFAULT FALSE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_notifications_recipient ON notifications (tenant_id, recipient_email)"
    )

    # ── 9. outbox_messages ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE outbox_messages (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id),
            channel         outbox_channel NOT NULL,
            payload         JSONB NOT NULL,
            status          outbox_status NOT NULL DEFAULT 'pending',
            attempts        INTEGER NOT NULL DEFAULT 0,
            last_error      TEXT,
            next_attempt_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            sent_at         TIMESTAMPTZ,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_outbox_due ON outbox_messages (status, next_attempt_at)"
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "outbox_messages",
        "notifications",
        "timesheets",
        "comp_off_credits",
        "leaves",
        "leave_balances",
        "leave_types",
        "users",
        "tenants",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
