"""Credit ledger service.

The only code that changes a credit balance. Every change is an atomic
balance update plus an immutable ledger entry, so at every observation

    balance == sum(purchases) - sum(usages) + sum(refunds)

Persistence failures are never swallowed: they surface as LedgerWriteError
(or RefundFailureError for refunds, so the orchestrator can tell a failed
compensation apart from a failed reservation).
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from expertise.core.errors import (
    InsufficientCreditsError,
    LedgerWriteError,
    RefundFailureError,
    ValidationError,
)
from expertise.models.credit import CreditAccount, CreditTransaction, TransactionKind
from expertise.repositories.base import CreditRepository

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

# Errors a repository raises when its backing store is unavailable
_STORAGE_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, OSError)


def _require_positive(amount: Decimal, field: str = "amount") -> None:
    if amount <= _ZERO:
        raise ValidationError(
            f"{field} must be positive",
            details=[{"field": field, "value": str(amount)}],
        )


class CreditLedger:
    """Reserves, refunds and purchases credits.

    Args:
        repository: Persistence for accounts and transactions.
    """

    def __init__(self, repository: CreditRepository) -> None:
        self._repo = repository

    async def open_account(self, user_id: uuid.UUID) -> CreditAccount:
        """Create the user's account with a zero balance (idempotent).

        Raises:
            LedgerWriteError: If the account cannot be written.
        """
        try:
            return await self._repo.open_account(user_id)
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to open credit account for user %s", user_id)
            raise LedgerWriteError("Could not open credit account") from e

    async def get_account(self, user_id: uuid.UUID) -> CreditAccount | None:
        """Return the user's account, or None if it was never opened.

        Raises:
            LedgerWriteError: If the ledger cannot be read.
        """
        try:
            return await self._repo.get_account(user_id)
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to read balance for user %s", user_id)
            raise LedgerWriteError("Could not read credit balance") from e

    async def get_balance(self, user_id: uuid.UUID) -> Decimal:
        """Return the user's balance (zero when no account exists yet)."""
        account = await self.get_account(user_id)
        return account.balance if account is not None else _ZERO

    async def reserve(
        self,
        user_id: uuid.UUID,
        amount: Decimal,
        report_id: uuid.UUID,
        description: str | None = None,
    ) -> CreditTransaction:
        """Atomically debit amount and record a USAGE entry for the report.

        Concurrent reservations against the same account are serialized by
        the repository; they can never jointly overdraw it.

        Args:
            user_id: Account to debit.
            amount: Credits to reserve.
            report_id: Report the reservation pays for.
            description: Human-readable description.

        Returns:
            The USAGE transaction.

        Raises:
            ValidationError: If amount is not positive.
            InsufficientCreditsError: If the balance is below amount. Nothing
                is written.
            LedgerWriteError: If the ledger cannot be written.
        """
        _require_positive(amount)
        try:
            txn = await self._repo.debit_for_report(
                user_id=user_id,
                amount=amount,
                report_id=report_id,
                description=description,
            )
        except _STORAGE_ERRORS as e:
            logger.exception(
                "Credit reservation failed for user %s (report %s, amount %s)",
                user_id,
                report_id,
                amount,
            )
            raise LedgerWriteError("Could not reserve credits") from e

        if txn is None:
            available = await self.get_balance(user_id)
            logger.info(
                "Insufficient credits for user %s: need %s, have %s",
                user_id,
                amount,
                available,
            )
            raise InsufficientCreditsError(required=amount, available=available)

        logger.info(
            "Reserved %s credits for user %s (report %s)", amount, user_id, report_id
        )
        return txn

    async def refund(
        self,
        user_id: uuid.UUID,
        report_id: uuid.UUID,
        amount: Decimal,
        reason: str | None = None,
    ) -> CreditTransaction:
        """Return credits reserved for a report. Idempotent per report.

        A second refund for the same report returns the first REFUND entry
        and leaves the balance untouched, so racing failure paths cannot
        double-credit.

        Args:
            user_id: Account to credit.
            report_id: Report whose reservation is returned.
            amount: Credits to return; must not exceed the report's USAGE.
            reason: Human-readable description.

        Returns:
            The REFUND transaction (new or pre-existing).

        Raises:
            ValidationError: If amount is not positive, the report has no
                reservation, or amount exceeds what was reserved.
            RefundFailureError: If the ledger cannot be written.
        """
        _require_positive(amount)
        try:
            usage = await self._repo.find_for_report(report_id, TransactionKind.USAGE)
            if usage is None:
                raise ValidationError(
                    "No reservation exists for this report",
                    details=[{"report_id": str(report_id)}],
                )
            if usage.user_id != user_id or amount > usage.amount:
                raise ValidationError(
                    "Refund does not match the reservation for this report",
                    details=[{"report_id": str(report_id), "amount": str(amount)}],
                )
            txn, created = await self._repo.refund_for_report(
                user_id=user_id,
                amount=amount,
                report_id=report_id,
                description=reason,
            )
        except _STORAGE_ERRORS as e:
            logger.exception(
                "Refund failed for user %s (report %s, amount %s)",
                user_id,
                report_id,
                amount,
            )
            raise RefundFailureError(report_id=str(report_id), amount=amount) from e

        if created:
            logger.info(
                "Refunded %s credits to user %s (report %s)",
                amount,
                user_id,
                report_id,
            )
        else:
            logger.info("Refund for report %s already recorded", report_id)
        return txn

    async def purchase(
        self,
        user_id: uuid.UUID,
        amount: Decimal,
        reference: str | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        """Add purchased credits and record a PURCHASE entry.

        Args:
            user_id: Account to credit (created if missing).
            amount: Credits bought.
            reference: External payment reference.
            description: Human-readable description.

        Returns:
            The PURCHASE transaction.

        Raises:
            ValidationError: If amount is not positive.
            LedgerWriteError: If the ledger cannot be written.
        """
        _require_positive(amount)
        try:
            txn = await self._repo.credit_purchase(
                user_id=user_id,
                amount=amount,
                reference=reference,
                description=description,
            )
        except _STORAGE_ERRORS as e:
            logger.exception(
                "Purchase of %s credits failed for user %s", amount, user_id
            )
            raise LedgerWriteError("Could not record credit purchase") from e

        logger.info("User %s purchased %s credits", user_id, amount)
        return txn

    async def list_transactions(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        kind: TransactionKind | None = None,
    ) -> tuple[list[CreditTransaction], int]:
        """Return one page of the user's ledger (newest first) and the total."""
        try:
            return await self._repo.list_transactions(
                user_id, offset=offset, limit=limit, kind=kind
            )
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to list transactions for user %s", user_id)
            raise LedgerWriteError("Could not read credit transactions") from e

    async def reconcile(self, user_id: uuid.UUID) -> bool:
        """Check that the cached balance equals the signed ledger sum.

        Returns:
            True when they agree. A mismatch is logged at error level.

        Raises:
            LedgerWriteError: If the ledger cannot be read.
        """
        try:
            account = await self._repo.get_account(user_id)
            ledger_total = await self._repo.ledger_sum(user_id)
        except _STORAGE_ERRORS as e:
            logger.exception("Failed to reconcile ledger for user %s", user_id)
            raise LedgerWriteError("Could not read credit ledger") from e

        balance = account.balance if account is not None else _ZERO
        if balance != ledger_total:
            logger.error(
                "Ledger mismatch for user %s: balance %s, ledger sum %s",
                user_id,
                balance,
                ledger_total,
            )
            return False
        return True
