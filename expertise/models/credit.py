"""Credit ledger ORM models.

CreditAccount holds the cached balance; CreditTransaction is the
append-only log of every balance change. Transactions are never updated
or deleted, and their signed sum always equals the account balance.

Amounts are stored positive. The kind carries the sign:
PURCHASE (+), USAGE (-), REFUND (+).
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from expertise.models.base import CREDITS, Base, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")


class TransactionKind(Enum):
    """Ledger entry kinds. Values match ck_credit_txn_kind_valid."""

    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"


# Sign applied to the stored (positive) amount when summing the ledger
_KIND_SIGN: dict[str, int] = {
    TransactionKind.PURCHASE.value: 1,
    TransactionKind.USAGE.value: -1,
    TransactionKind.REFUND.value: 1,
}


class CreditAccount(TimestampMixin, Base):
    """A user's credit balance.

    Created at signup and never hard-deleted. The balance is mutated only
    by CreditLedger through its repository.

    Attributes:
        user_id: Account owner (primary key).
        balance: Current balance in credits, never negative.
        total_purchased: Lifetime credits purchased.
        total_used: Lifetime credits spent net of refunds.
    """

    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_credit_account_balance_nonneg"),
        CheckConstraint(
            "total_purchased >= 0", name="ck_credit_account_purchased_nonneg"
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )
    balance: Mapped[Decimal] = mapped_column(
        CREDITS,
        server_default="0",
        nullable=False,
    )
    total_purchased: Mapped[Decimal] = mapped_column(
        CREDITS,
        server_default="0",
        nullable=False,
    )
    total_used: Mapped[Decimal] = mapped_column(
        CREDITS,
        server_default="0",
        nullable=False,
    )


class CreditTransaction(Base):
    """Immutable ledger entry.

    At most one USAGE and one REFUND may reference a given report; the
    unique (kind, report_id) constraint is what makes refunds idempotent.

    Attributes:
        id: UUID primary key.
        user_id: FK to credit_accounts.
        kind: purchase, usage or refund.
        amount: Positive number of credits.
        report_id: Report the entry pays for or refunds (None for purchases).
        reference: External payment reference for purchases.
        description: Human-readable description.
        created_at: Transaction timestamp.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('purchase', 'usage', 'refund')",
            name="ck_credit_txn_kind_valid",
        ),
        CheckConstraint("amount > 0", name="ck_credit_txn_amount_positive"),
        UniqueConstraint("kind", "report_id", name="uq_credit_txn_kind_report"),
        Index("ix_credit_txn_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("credit_accounts.user_id"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        CREDITS,
        nullable=False,
    )
    report_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
    )
    reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the ledger sign applied (+purchase, -usage, +refund)."""
        return self.amount * _KIND_SIGN[self.kind]
