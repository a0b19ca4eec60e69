"""Persistence interfaces for the credit ledger and report store.

Every method is one atomic unit of work: it either fully applies or leaves
storage untouched. Infrastructure failures surface as the backend's own
exceptions (SQLAlchemyError, OSError); the services translate them into
LedgerWriteError / ReportWriteError.

Implementations:
- credit_repository.SqlCreditRepository / report_repository.SqlReportRepository
  (PostgreSQL through SQLAlchemy asyncio)
- memory.InMemoryCreditRepository / memory.InMemoryReportRepository
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any

from expertise.models.credit import CreditAccount, CreditTransaction, TransactionKind
from expertise.models.report import Report


class CreditRepository(ABC):
    """Storage for credit accounts and the append-only transaction log."""

    @abstractmethod
    async def open_account(self, user_id: uuid.UUID) -> CreditAccount:
        """Create the account with a zero balance, or return the existing one."""

    @abstractmethod
    async def get_account(self, user_id: uuid.UUID) -> CreditAccount | None:
        """Return the account, or None if the user has none."""

    @abstractmethod
    async def debit_for_report(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None,
    ) -> CreditTransaction | None:
        """Atomically decrement the balance and append a USAGE entry.

        Returns:
            The USAGE transaction, or None when the balance is below amount
            (nothing is written in that case).
        """

    @abstractmethod
    async def refund_for_report(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None,
    ) -> tuple[CreditTransaction, bool]:
        """Append a REFUND entry for a report unless one already exists.

        Returns:
            Tuple of (refund transaction, created). created is False when an
            earlier refund for the same report was returned instead and the
            balance was left untouched.
        """

    @abstractmethod
    async def credit_purchase(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        reference: str | None,
        description: str | None,
    ) -> CreditTransaction:
        """Atomically increment the balance and append a PURCHASE entry."""

    @abstractmethod
    async def find_for_report(
        self,
        report_id: uuid.UUID,
        kind: TransactionKind,
    ) -> CreditTransaction | None:
        """Return the USAGE or REFUND entry recorded for a report."""

    @abstractmethod
    async def list_transactions(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        kind: TransactionKind | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        """Return one page of entries (newest first) and the total count."""

    @abstractmethod
    async def ledger_sum(self, user_id: uuid.UUID) -> Decimal:
        """Return the signed sum of every entry for the user."""


class ReportRepository(ABC):
    """Storage for reports."""

    @abstractmethod
    async def insert(self, report: Report) -> Report:
        """Persist a new report and return the stored row."""

    @abstractmethod
    async def get(self, report_id: uuid.UUID) -> Report | None:
        """Return the report regardless of owner, or None."""

    @abstractmethod
    async def transition(
        self,
        report_id: uuid.UUID,
        *,
        expected_status: str,
        new_status: str,
        values: dict[str, Any] | None = None,
    ) -> Report | None:
        """Compare-and-set the status, applying extra column values.

        Returns:
            The updated report, or None if the report is missing or its
            status no longer equals expected_status.
        """

    @abstractmethod
    async def set_exported(
        self,
        report_id: uuid.UUID,
        exported_at: datetime,
    ) -> Report | None:
        """Stamp exported_at on a COMPLETED report; None if not COMPLETED."""

    @abstractmethod
    async def list_by_user(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        module_type: str | None = None,
    ) -> tuple[list[Report], int]:
        """Return one page of the user's reports (newest first) and the total."""
