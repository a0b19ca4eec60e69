"""Report ORM model.

A report ties one billing event (the USAGE transaction) to one evaluator
computation. It is created in PROCESSING and transitions exactly once to
COMPLETED or FAILED; afterwards only exported_at may change.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from expertise.models.base import CREDITS, Base, TimestampMixin


class Report(TimestampMixin, Base):
    """Vehicle condition report.

    Attributes:
        id: UUID primary key (generated before the credit reservation so the
            USAGE entry can reference it).
        user_id: Owner.
        module_type: paint, damage, audio, value or comprehensive.
        status: PENDING, PROCESSING, COMPLETED or FAILED.
        cost_charged: Credits reserved for this report.
        usage_transaction_id: The USAGE ledger entry that paid for it.
        input_refs: Opaque references to uploaded media and vehicle info.
        result_payload: Schema-valid evaluator output (COMPLETED only).
        failure_note: User-facing explanation (FAILED only).
        exported_at: When a PDF export was produced.
    """

    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED')",
            name="ck_report_status_valid",
        ),
        CheckConstraint(
            "module_type IN ('paint', 'damage', 'audio', 'value', 'comprehensive')",
            name="ck_report_module_type_valid",
        ),
        CheckConstraint("cost_charged >= 0", name="ck_report_cost_nonneg"),
        CheckConstraint(
            "status != 'COMPLETED' OR result_payload IS NOT NULL",
            name="ck_report_completed_has_payload",
        ),
        Index("ix_reports_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )
    module_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    cost_charged: Mapped[Decimal] = mapped_column(
        CREDITS,
        nullable=False,
    )
    usage_transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("credit_transactions.id"),
        nullable=True,
    )
    input_refs: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )
    result_payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
    )
    failure_note: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    exported_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
