"""PostgreSQL implementation of the credit ledger repository.

Each public method opens its own session and runs inside session.begin(),
so a balance update and the ledger entry that explains it commit together
or not at all.
"""

import uuid
from decimal import Decimal
from typing import Any, cast

from sqlalchemy import case, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expertise.models.credit import CreditAccount, CreditTransaction, TransactionKind
from expertise.repositories.base import CreditRepository


class SqlCreditRepository(CreditRepository):
    """Credit ledger storage backed by PostgreSQL.

    Args:
        session_factory: Factory for the sessions each unit of work runs in.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def open_account(self, user_id: uuid.UUID) -> CreditAccount:
        async with self._session_factory() as db, db.begin():
            await db.execute(
                pg_insert(CreditAccount)
                .values(user_id=user_id)
                .on_conflict_do_nothing(index_elements=["user_id"])
            )
            account = await db.get(CreditAccount, user_id)
        return cast(CreditAccount, account)

    async def get_account(self, user_id: uuid.UUID) -> CreditAccount | None:
        async with self._session_factory() as db:
            return await db.get(CreditAccount, user_id)

    async def debit_for_report(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None,
    ) -> CreditTransaction | None:
        """Atomically debit the account and record the USAGE entry.

        Uses WHERE balance >= amount so concurrent reservations can never
        overdraw: the row lock serializes them and the loser sees the
        already-decremented balance.

        Args:
            user_id: Account to debit.
            amount: Credits to debit (positive value).
            report_id: Report the reservation pays for.
            description: Human-readable description.

        Returns:
            The USAGE transaction, or None if the balance was insufficient.
        """
        async with self._session_factory() as db, db.begin():
            result = cast(
                CursorResult[Any],
                await db.execute(
                    text(
                        "UPDATE credit_accounts "
                        "SET balance = balance - :amount, "
                        "total_used = total_used + :amount, "
                        "updated_at = now() "
                        "WHERE user_id = :user_id AND balance >= :amount"
                    ),
                    {"amount": amount, "user_id": user_id},
                ),
            )
            rows_updated: int = result.rowcount
            if rows_updated == 0:
                return None

            txn = CreditTransaction(
                id=uuid.uuid4(),
                user_id=user_id,
                kind=TransactionKind.USAGE.value,
                amount=amount,
                report_id=report_id,
                description=description,
            )
            db.add(txn)
            await db.flush()
            await db.refresh(txn)
        return txn

    async def refund_for_report(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None,
    ) -> tuple[CreditTransaction, bool]:
        """Record a REFUND for the report at most once.

        The insert uses ON CONFLICT DO NOTHING against uq_credit_txn_kind_report;
        when it inserts nothing, a concurrent or earlier refund already exists
        and is returned without touching the balance.

        Args:
            user_id: Account to credit.
            amount: Credits to return (positive value).
            report_id: Report being refunded.
            description: Human-readable description.

        Returns:
            Tuple of (refund transaction, created).
        """
        async with self._session_factory() as db, db.begin():
            existing = await self._find(db, report_id, TransactionKind.REFUND)
            if existing is not None:
                return existing, False

            new_id = await db.scalar(
                pg_insert(CreditTransaction)
                .values(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    kind=TransactionKind.REFUND.value,
                    amount=amount,
                    report_id=report_id,
                    description=description,
                )
                .on_conflict_do_nothing(constraint="uq_credit_txn_kind_report")
                .returning(CreditTransaction.id)
            )
            if new_id is None:
                winner = await self._find(db, report_id, TransactionKind.REFUND)
                return cast(CreditTransaction, winner), False

            await db.execute(
                text(
                    "UPDATE credit_accounts "
                    "SET balance = balance + :amount, "
                    "total_used = total_used - :amount, "
                    "updated_at = now() "
                    "WHERE user_id = :user_id"
                ),
                {"amount": amount, "user_id": user_id},
            )
            txn = await db.get(CreditTransaction, new_id)
        return cast(CreditTransaction, txn), True

    async def credit_purchase(
        self,
        *,
        user_id: uuid.UUID,
        amount: Decimal,
        reference: str | None,
        description: str | None,
    ) -> CreditTransaction:
        async with self._session_factory() as db, db.begin():
            accounts = CreditAccount.__table__.c
            await db.execute(
                pg_insert(CreditAccount)
                .values(user_id=user_id, balance=amount, total_purchased=amount)
                .on_conflict_do_update(
                    index_elements=["user_id"],
                    set_={
                        "balance": accounts.balance + amount,
                        "total_purchased": accounts.total_purchased + amount,
                        "updated_at": func.now(),
                    },
                )
            )
            txn = CreditTransaction(
                id=uuid.uuid4(),
                user_id=user_id,
                kind=TransactionKind.PURCHASE.value,
                amount=amount,
                reference=reference,
                description=description,
            )
            db.add(txn)
            await db.flush()
            await db.refresh(txn)
        return txn

    async def find_for_report(
        self,
        report_id: uuid.UUID,
        kind: TransactionKind,
    ) -> CreditTransaction | None:
        async with self._session_factory() as db:
            return await self._find(db, report_id, kind)

    async def list_transactions(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        kind: TransactionKind | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        """List ledger entries for a user with pagination.

        Args:
            user_id: User to query transactions for.
            offset: Number of records to skip.
            limit: Maximum records to return.
            kind: Optional filter (purchase, usage, refund).

        Returns:
            Tuple of (transactions list, total count).
        """
        conditions = [CreditTransaction.user_id == user_id]
        if kind is not None:
            conditions.append(CreditTransaction.kind == kind.value)

        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.count()).select_from(CreditTransaction).where(*conditions)
            )
            result = await db.execute(
                select(CreditTransaction)
                .where(*conditions)
                .order_by(CreditTransaction.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            txns = list(result.scalars().all())

        return txns, total or 0

    async def ledger_sum(self, user_id: uuid.UUID) -> Decimal:
        signed = case(
            (
                CreditTransaction.kind == TransactionKind.USAGE.value,
                -CreditTransaction.amount,
            ),
            else_=CreditTransaction.amount,
        )
        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.coalesce(func.sum(signed), 0)).where(
                    CreditTransaction.user_id == user_id
                )
            )
        return Decimal(total)

    @staticmethod
    async def _find(
        db: AsyncSession,
        report_id: uuid.UUID,
        kind: TransactionKind,
    ) -> CreditTransaction | None:
        return await db.scalar(
            select(CreditTransaction).where(
                CreditTransaction.report_id == report_id,
                CreditTransaction.kind == kind.value,
            )
        )
