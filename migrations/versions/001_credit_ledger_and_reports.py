"""Create credit ledger and report tables.

Revision ID: 001_credit_ledger_and_reports
Revises:
Create Date: 2026-10-17

credit_accounts holds the cached balance, credit_transactions the
append-only ledger, reports the analysis lifecycle. The unique
(kind, report_id) constraint allows one USAGE and one REFUND per report;
purchases have a NULL report_id and are not constrained by it.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_credit_ledger_and_reports"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Shared column types
_PG_UUID = postgresql.UUID(as_uuid=True)
_UUID_DEFAULT = sa.text("gen_random_uuid()")
_CREDITS = sa.Numeric(precision=12, scale=2)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create credit_accounts, credit_transactions and reports."""
    # gen_random_uuid() is built in from PostgreSQL 13; pgcrypto covers older
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # 1. Accounts
    op.create_table(
        "credit_accounts",
        sa.Column("user_id", _PG_UUID, primary_key=True),
        sa.Column("balance", _CREDITS, server_default="0", nullable=False),
        sa.Column("total_purchased", _CREDITS, server_default="0", nullable=False),
        sa.Column("total_used", _CREDITS, server_default="0", nullable=False),
        *_timestamps(),
        sa.CheckConstraint("balance >= 0", name="ck_credit_account_balance_nonneg"),
        sa.CheckConstraint(
            "total_purchased >= 0", name="ck_credit_account_purchased_nonneg"
        ),
    )

    # 2. Ledger
    op.create_table(
        "credit_transactions",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        sa.Column(
            "user_id",
            _PG_UUID,
            sa.ForeignKey("credit_accounts.user_id"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("amount", _CREDITS, nullable=False),
        sa.Column("report_id", _PG_UUID, nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "kind IN ('purchase', 'usage', 'refund')",
            name="ck_credit_txn_kind_valid",
        ),
        sa.CheckConstraint("amount > 0", name="ck_credit_txn_amount_positive"),
        sa.UniqueConstraint("kind", "report_id", name="uq_credit_txn_kind_report"),
    )
    op.create_index(
        "ix_credit_txn_user_created",
        "credit_transactions",
        ["user_id", "created_at"],
    )

    # 3. Reports
    op.create_table(
        "reports",
        sa.Column("id", _PG_UUID, primary_key=True),
        sa.Column("user_id", _PG_UUID, nullable=False),
        sa.Column("module_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("cost_charged", _CREDITS, nullable=False),
        sa.Column(
            "usage_transaction_id",
            _PG_UUID,
            sa.ForeignKey("credit_transactions.id"),
            nullable=True,
        ),
        sa.Column(
            "input_refs",
            postgresql.JSONB,
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("result_payload", postgresql.JSONB, nullable=True),
        sa.Column("failure_note", sa.Text, nullable=True),
        sa.Column("exported_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED')",
            name="ck_report_status_valid",
        ),
        sa.CheckConstraint(
            "module_type IN ('paint', 'damage', 'audio', 'value', 'comprehensive')",
            name="ck_report_module_type_valid",
        ),
        sa.CheckConstraint("cost_charged >= 0", name="ck_report_cost_nonneg"),
        sa.CheckConstraint(
            "status != 'COMPLETED' OR result_payload IS NOT NULL",
            name="ck_report_completed_has_payload",
        ),
    )
    op.create_index("ix_reports_user_created", "reports", ["user_id", "created_at"])


def downgrade() -> None:
    """Drop reports and the credit ledger."""
    op.drop_index("ix_reports_user_created", table_name="reports")
    op.drop_table("reports")
    op.drop_index("ix_credit_txn_user_created", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_table("credit_accounts")
