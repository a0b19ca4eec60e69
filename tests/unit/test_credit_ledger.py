"""Tests for the credit ledger service.

Tests verify:
- Reservations debit atomically and record one USAGE entry
- Insufficient balance raises 402 data and writes nothing
- Refunds are idempotent per report
- Concurrent reservations can never overdraw an account
- Storage failures surface as LedgerWriteError / RefundFailureError
- balance == purchases - usages + refunds after any operation sequence
"""

import asyncio
import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from expertise.core.errors import (
    InsufficientCreditsError,
    LedgerWriteError,
    RefundFailureError,
    ValidationError,
)
from expertise.models.credit import TransactionKind
from expertise.repositories.memory import InMemoryCreditRepository
from expertise.services.credit_ledger import CreditLedger

USER = uuid.UUID("00000000-0000-0000-0000-000000000042")


@pytest.fixture
def repo() -> InMemoryCreditRepository:
    return InMemoryCreditRepository()


@pytest.fixture
def ledger(repo) -> CreditLedger:
    return CreditLedger(repo)


async def _funded(ledger: CreditLedger, amount: str) -> None:
    await ledger.purchase(USER, Decimal(amount), reference="seed")


# =============================================================================
# reserve
# =============================================================================


class TestReserve:
    """Reserving credits for a report."""

    async def test_debits_and_records_usage(self, ledger, repo):
        """100 - 35 leaves 65 and one USAGE entry for the report."""
        await _funded(ledger, "100")
        report_id = uuid.uuid4()

        txn = await ledger.reserve(USER, Decimal("35"), report_id, "paint analysis")

        assert txn.kind == TransactionKind.USAGE.value
        assert txn.report_id == report_id
        assert await ledger.get_balance(USER) == Decimal("65")
        assert repo.accounts[USER].total_used == Decimal("35")

    async def test_exact_balance_can_be_spent(self, ledger):
        """Reserving the whole balance leaves zero."""
        await _funded(ledger, "85")

        await ledger.reserve(USER, Decimal("85"), uuid.uuid4())

        assert await ledger.get_balance(USER) == Decimal("0")

    async def test_insufficient_balance_writes_nothing(self, ledger, repo):
        """A failed reservation leaves balance and ledger untouched."""
        await _funded(ledger, "20")

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.reserve(USER, Decimal("35"), uuid.uuid4())

        assert exc_info.value.status_code == 402
        assert "need 35, have 20" in exc_info.value.message
        assert await ledger.get_balance(USER) == Decimal("20")
        assert len(repo.transactions) == 1

    async def test_no_account_means_zero_balance(self, ledger):
        """A user who never bought credits cannot reserve."""
        with pytest.raises(InsufficientCreditsError):
            await ledger.reserve(USER, Decimal("1"), uuid.uuid4())

    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_rejects_non_positive_amount(self, ledger, amount):
        with pytest.raises(ValidationError):
            await ledger.reserve(USER, Decimal(amount), uuid.uuid4())

    async def test_storage_failure_is_ledger_write_error(self, ledger, repo):
        """Storage errors are never swallowed."""
        await _funded(ledger, "100")

        with (
            patch.object(
                repo, "debit_for_report", side_effect=ConnectionError("db down")
            ),
            pytest.raises(LedgerWriteError),
        ):
            await ledger.reserve(USER, Decimal("35"), uuid.uuid4())

    async def test_second_reservation_for_report_is_ledger_write_error(self, ledger):
        """A report is charged once, as the unique constraint enforces in SQL."""
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        with pytest.raises(LedgerWriteError):
            await ledger.reserve(USER, Decimal("35"), report_id)

        assert await ledger.get_balance(USER) == Decimal("65")

    async def test_concurrent_reservations_never_overdraw(self, ledger):
        """Two 6-credit reservations against 10: exactly one succeeds."""
        await _funded(ledger, "10")

        results = await asyncio.gather(
            ledger.reserve(USER, Decimal("6"), uuid.uuid4()),
            ledger.reserve(USER, Decimal("6"), uuid.uuid4()),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, InsufficientCreditsError)]
        assert len(failures) == 1
        assert await ledger.get_balance(USER) == Decimal("4")


# =============================================================================
# refund
# =============================================================================


class TestRefund:
    """Returning a reservation."""

    async def test_refund_restores_balance(self, ledger):
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        txn = await ledger.refund(USER, report_id, Decimal("35"), reason="failed")

        assert txn.kind == TransactionKind.REFUND.value
        assert await ledger.get_balance(USER) == Decimal("100")

    async def test_second_refund_is_a_no_op(self, ledger, repo):
        """Refunding the same report twice credits once."""
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        first = await ledger.refund(USER, report_id, Decimal("35"))
        second = await ledger.refund(USER, report_id, Decimal("35"))

        assert first.id == second.id
        assert await ledger.get_balance(USER) == Decimal("100")
        refunds = [t for t in repo.transactions if t.kind == "refund"]
        assert len(refunds) == 1

    async def test_concurrent_refunds_credit_once(self, ledger):
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        await asyncio.gather(
            ledger.refund(USER, report_id, Decimal("35")),
            ledger.refund(USER, report_id, Decimal("35")),
        )

        assert await ledger.get_balance(USER) == Decimal("100")

    async def test_refund_cannot_exceed_reservation(self, ledger):
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        with pytest.raises(ValidationError):
            await ledger.refund(USER, report_id, Decimal("50"))

    async def test_refund_without_reservation_is_rejected(self, ledger, repo):
        """Credits cannot be refunded for a report that was never charged."""
        await _funded(ledger, "10")

        with pytest.raises(ValidationError):
            await ledger.refund(USER, uuid.uuid4(), Decimal("500"))

        assert await ledger.get_balance(USER) == Decimal("10")
        assert [t.kind for t in repo.transactions] == ["purchase"]

    async def test_refund_to_another_user_is_rejected(self, ledger):
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        with pytest.raises(ValidationError):
            await ledger.refund(uuid.uuid4(), report_id, Decimal("35"))

    async def test_storage_failure_is_refund_failure(self, ledger, repo):
        """RefundFailureError is a LedgerWriteError carrying the report id."""
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)

        with (
            patch.object(
                repo, "refund_for_report", side_effect=ConnectionError("db down")
            ),
            pytest.raises(RefundFailureError) as exc_info,
        ):
            await ledger.refund(USER, report_id, Decimal("35"))

        assert isinstance(exc_info.value, LedgerWriteError)
        assert exc_info.value.code == "REFUND_FAILED"
        assert await ledger.get_balance(USER) == Decimal("65")


# =============================================================================
# purchase / history / reconcile
# =============================================================================


class TestPurchaseAndHistory:
    """Purchases, listing and reconciliation."""

    async def test_purchase_opens_account(self, ledger, repo):
        await ledger.purchase(USER, Decimal("150"), reference="pay_123")

        assert await ledger.get_balance(USER) == Decimal("150")
        assert repo.accounts[USER].total_purchased == Decimal("150")

    async def test_open_account_is_idempotent(self, ledger):
        await ledger.open_account(USER)
        await _funded(ledger, "10")
        account = await ledger.open_account(USER)

        assert account.balance == Decimal("10")

    async def test_list_transactions_newest_first_with_filter(self, ledger):
        await _funded(ledger, "100")
        report_id = uuid.uuid4()
        await ledger.reserve(USER, Decimal("35"), report_id)
        await ledger.refund(USER, report_id, Decimal("35"))

        all_txns, total = await ledger.list_transactions(USER)
        usages, usage_total = await ledger.list_transactions(
            USER, kind=TransactionKind.USAGE
        )

        assert total == 3
        assert [t.kind for t in all_txns] == ["refund", "usage", "purchase"]
        assert usage_total == 1
        assert usages[0].signed_amount == Decimal("-35")

    async def test_reconcile_detects_drift(self, ledger, repo):
        await _funded(ledger, "100")
        assert await ledger.reconcile(USER) is True

        repo.accounts[USER].balance += Decimal("1")

        assert await ledger.reconcile(USER) is False


# =============================================================================
# Property: balance equals the signed ledger sum
# =============================================================================

_operations = st.lists(
    st.tuples(
        st.sampled_from(["purchase", "reserve", "refund"]),
        st.integers(min_value=1, max_value=200),
    ),
    max_size=25,
)


class TestLedgerInvariant:
    """balance == purchases - usages + refunds, whatever happens."""

    @given(operations=_operations)
    @settings(
        max_examples=60,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    async def test_balance_matches_ledger_sum(self, operations):
        repo = InMemoryCreditRepository()
        ledger = CreditLedger(repo)
        reserved: list[tuple[uuid.UUID, Decimal]] = []

        for op, value in operations:
            amount = Decimal(value)
            if op == "purchase":
                await ledger.purchase(USER, amount)
            elif op == "reserve":
                report_id = uuid.uuid4()
                try:
                    await ledger.reserve(USER, amount, report_id)
                except InsufficientCreditsError:
                    continue
                reserved.append((report_id, amount))
            elif reserved:
                report_id, reserved_amount = reserved[value % len(reserved)]
                await ledger.refund(USER, report_id, reserved_amount)

            balance = await ledger.get_balance(USER)
            assert balance >= 0
            assert balance == await repo.ledger_sum(USER)
