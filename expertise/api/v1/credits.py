"""Credits API router.

Balance, ledger history, and package purchases. Amounts are strings with
2 decimals; ledger amounts are signed.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status

from expertise.api.deps import CurrentUserId, Services
from expertise.core.pagination import PaginationParams, pagination_params
from expertise.core.pricing import CREDIT_PACKAGES
from expertise.core.responses import DataResponse, ListResponse
from expertise.models.credit import TransactionKind
from expertise.schemas.credits import (
    BalanceResponse,
    CreditTransactionResponse,
    PurchaseRequest,
    PurchaseResponse,
)

router = APIRouter()

# =============================================================================
# Shared types
# =============================================================================

_CREDITS_FMT = "{:.2f}"
_ZERO = Decimal("0")
Pagination = Annotated[PaginationParams, Depends(pagination_params)]

KindFilter = Annotated[
    Literal["purchase", "usage", "refund"] | None,
    Query(description="Filter: purchase, usage, refund"),
]


# =============================================================================
# GET /balance
# =============================================================================


@router.get("/balance")
async def get_balance(
    user_id: CurrentUserId,
    services: Services,
) -> DataResponse[BalanceResponse]:
    """Return the user's balance and lifetime totals (zero if never funded)."""
    account = await services.ledger.get_account(user_id)
    return DataResponse(
        data=BalanceResponse(
            balance=_CREDITS_FMT.format(account.balance if account else _ZERO),
            total_purchased=_CREDITS_FMT.format(
                account.total_purchased if account else _ZERO
            ),
            total_used=_CREDITS_FMT.format(account.total_used if account else _ZERO),
            as_of=datetime.now(UTC),
        )
    )


# =============================================================================
# GET /transactions
# =============================================================================


@router.get("/transactions")
async def get_transactions(
    user_id: CurrentUserId,
    services: Services,
    pagination: Pagination,
    kind: KindFilter = None,
) -> ListResponse[CreditTransactionResponse]:
    """Return the user's ledger entries, newest first."""
    transactions, total = await services.ledger.list_transactions(
        user_id,
        offset=pagination.offset,
        limit=pagination.limit,
        kind=TransactionKind(kind) if kind else None,
    )
    return ListResponse(
        data=[
            CreditTransactionResponse(
                id=str(txn.id),
                kind=txn.kind,
                amount=_CREDITS_FMT.format(txn.signed_amount),
                report_id=str(txn.report_id) if txn.report_id else None,
                description=txn.description,
                created_at=txn.created_at,
            )
            for txn in transactions
        ],
        meta=pagination.meta(total),
    )


# =============================================================================
# POST /purchase
# =============================================================================


@router.post("/purchase", status_code=status.HTTP_201_CREATED)
async def purchase_credits(
    body: PurchaseRequest,
    user_id: CurrentUserId,
    services: Services,
) -> DataResponse[PurchaseResponse]:
    """Add a credit package to the user's balance.

    Payment capture happens upstream; this endpoint records the credits
    against the provider's payment reference.
    """
    package = CREDIT_PACKAGES[body.package]
    txn = await services.ledger.purchase(
        user_id,
        package.credits,
        reference=body.payment_reference,
        description=f"{package.name} package",
    )
    balance = await services.ledger.get_balance(user_id)
    return DataResponse(
        data=PurchaseResponse(
            transaction_id=str(txn.id),
            package=package.key,
            credits_added=_CREDITS_FMT.format(package.credits),
            balance=_CREDITS_FMT.format(balance),
        )
    )
