"""In-process implementations of the ledger and report repositories.

Used by local runs with PERSISTENCE_BACKEND=memory and by the unit tests.
They honour the same atomicity contract as the PostgreSQL implementations:
debits and refunds for one account are serialized by a per-user
asyncio.Lock, and every returned object is a detached copy, so callers
observe snapshots exactly as they would from a database.
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError

from expertise.models.credit import CreditAccount, CreditTransaction, TransactionKind
from expertise.models.report import Report
from expertise.repositories.base import CreditRepository, ReportRepository
from expertise.services.report_status import ReportStatus

_ZERO = Decimal("0")


def _duplicate(statement: str, message: str) -> IntegrityError:
    """The error PostgreSQL reports when a unique constraint rejects a row."""
    return IntegrityError(statement, None, ValueError(message))


def _copy_account(account: CreditAccount) -> CreditAccount:
    return CreditAccount(
        user_id=account.user_id,
        balance=account.balance,
        total_purchased=account.total_purchased,
        total_used=account.total_used,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def _copy_report(report: Report) -> Report:
    return Report(
        id=report.id,
        user_id=report.user_id,
        module_type=report.module_type,
        status=report.status,
        cost_charged=report.cost_charged,
        usage_transaction_id=report.usage_transaction_id,
        input_refs=dict(report.input_refs or {}),
        result_payload=report.result_payload,
        failure_note=report.failure_note,
        exported_at=report.exported_at,
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


class InMemoryCreditRepository(CreditRepository):
    """Credit ledger storage held in process memory.

    Attributes:
        accounts: Account rows keyed by user id.
        transactions: Append-only ledger, oldest first.
    """

    def __init__(self) -> None:
        self.accounts: dict[uuid.UUID, CreditAccount] = {}
        self.transactions: list[CreditTransaction] = []
        self._locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _ensure_account(self, user_id: uuid.UUID) -> CreditAccount:
        account = self.accounts.get(user_id)
        if account is None:
            now = datetime.now(UTC)
            account = CreditAccount(
                user_id=user_id,
                balance=_ZERO,
                total_purchased=_ZERO,
                total_used=_ZERO,
                created_at=now,
                updated_at=now,
            )
            self.accounts[user_id] = account
        return account

    def _append(
        self,
        *,
        user_id: uuid.UUID,
        kind: TransactionKind,
        amount: Decimal,
        report_id: uuid.UUID | None = None,
        reference: str | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        txn = CreditTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            kind=kind.value,
            amount=amount,
            report_id=report_id,
            reference=reference,
            description=description,
            created_at=datetime.now(UTC),
        )
        self.transactions.append(txn)
        return txn

    def _find(
        self, report_id: uuid.UUID, kind: TransactionKind
    ) -> CreditTransaction | None:
        for txn in self.transactions:
            if txn.report_id == report_id and txn.kind == kind.value:
                return txn
        return None

    async def open_account(self, user_id: uuid.UUID) -> CreditAccount:
        async with self._locks[user_id]:
            return _copy_account(self._ensure_account(user_id))

    async def get_account(self, user_id: uuid.UUID) -> CreditAccount | None:
        account = self.accounts.get(user_id)
        return _copy_account(account) if account is not None else None

    async def debit_for_report(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None,
    ) -> CreditTransaction | None:
        async with self._locks[user_id]:
            account = self.accounts.get(user_id)
            if account is None or account.balance < amount:
                return None
            if self._find(report_id, TransactionKind.USAGE) is not None:
                raise _duplicate(
                    "INSERT INTO credit_transactions",
                    f"Report {report_id} already has a usage entry",
                )
            account.balance -= amount
            account.total_used += amount
            account.updated_at = datetime.now(UTC)
            return self._append(
                user_id=user_id,
                kind=TransactionKind.USAGE,
                amount=amount,
                report_id=report_id,
                description=description,
            )

    async def refund_for_report(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None,
    ) -> tuple[CreditTransaction, bool]:
        async with self._locks[user_id]:
            existing = self._find(report_id, TransactionKind.REFUND)
            if existing is not None:
                return existing, False
            account = self._ensure_account(user_id)
            account.balance += amount
            account.total_used -= amount
            account.updated_at = datetime.now(UTC)
            txn = self._append(
                user_id=user_id,
                kind=TransactionKind.REFUND,
                amount=amount,
                report_id=report_id,
                description=description,
            )
            return txn, True

    async def credit_purchase(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        reference: str | None,
        description: str | None,
    ) -> CreditTransaction:
        async with self._locks[user_id]:
            account = self._ensure_account(user_id)
            account.balance += amount
            account.total_purchased += amount
            account.updated_at = datetime.now(UTC)
            return self._append(
                user_id=user_id,
                kind=TransactionKind.PURCHASE,
                amount=amount,
                reference=reference,
                description=description,
            )

    async def find_for_report(
        self,
        report_id: uuid.UUID,
        kind: TransactionKind,
    ) -> CreditTransaction | None:
        return self._find(report_id, kind)

    async def list_transactions(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        kind: TransactionKind | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        matching = [
            txn
            for txn in reversed(self.transactions)
            if txn.user_id == user_id and (kind is None or txn.kind == kind.value)
        ]
        return matching[offset : offset + limit], len(matching)

    async def ledger_sum(self, user_id: uuid.UUID) -> Decimal:
        return sum(
            (txn.signed_amount for txn in self.transactions if txn.user_id == user_id),
            _ZERO,
        )


class InMemoryReportRepository(ReportRepository):
    """Report storage held in process memory.

    Attributes:
        reports: Stored rows keyed by report id.
    """

    def __init__(self) -> None:
        self.reports: dict[uuid.UUID, Report] = {}
        self._lock = asyncio.Lock()

    async def insert(self, report: Report) -> Report:
        async with self._lock:
            if report.id in self.reports:
                raise _duplicate(
                    "INSERT INTO reports", f"Report {report.id} already exists"
                )
            now = datetime.now(UTC)
            stored = _copy_report(report)
            stored.created_at = now
            stored.updated_at = now
            self.reports[report.id] = stored
            return _copy_report(stored)

    async def get(self, report_id: uuid.UUID) -> Report | None:
        report = self.reports.get(report_id)
        return _copy_report(report) if report is not None else None

    async def transition(
        self,
        report_id: uuid.UUID,
        *,
        expected_status: str,
        new_status: str,
        values: dict[str, Any] | None = None,
    ) -> Report | None:
        async with self._lock:
            report = self.reports.get(report_id)
            if report is None or report.status != expected_status:
                return None
            report.status = new_status
            for column, value in (values or {}).items():
                setattr(report, column, value)
            report.updated_at = datetime.now(UTC)
            return _copy_report(report)

    async def set_exported(
        self,
        report_id: uuid.UUID,
        exported_at: datetime,
    ) -> Report | None:
        async with self._lock:
            report = self.reports.get(report_id)
            if report is None or report.status != ReportStatus.COMPLETED.value:
                return None
            report.exported_at = exported_at
            report.updated_at = datetime.now(UTC)
            return _copy_report(report)

    async def list_by_user(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        module_type: str | None = None,
    ) -> tuple[list[Report], int]:
        matching = sorted(
            (
                r
                for r in self.reports.values()
                if r.user_id == user_id
                and (module_type is None or r.module_type == module_type)
            ),
            key=lambda r: r.created_at,
            reverse=True,
        )
        page = [_copy_report(r) for r in matching[offset : offset + limit]]
        return page, len(matching)
