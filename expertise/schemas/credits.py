"""Request/response schemas for credit and pricing endpoints.

Credit amounts are strings with 2 decimals; ledger amounts are signed
(+purchase, -usage, +refund).
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PackageKey = Literal["starter", "professional", "enterprise"]


class BalanceResponse(BaseModel):
    """Response for GET /api/v1/credits/balance.

    Attributes:
        balance: Current balance.
        total_purchased: Lifetime purchased credits.
        total_used: Lifetime credits spent (net of refunds).
        as_of: Time the balance was read.
    """

    model_config = ConfigDict(extra="forbid")

    balance: str
    total_purchased: str
    total_used: str
    as_of: datetime


class CreditTransactionResponse(BaseModel):
    """Response item for GET /api/v1/credits/transactions.

    Attributes:
        id: Transaction UUID.
        kind: purchase, usage or refund.
        amount: Signed amount.
        report_id: Report the entry pays for or refunds, if any.
        description: Human-readable description, or None.
        created_at: Transaction timestamp.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    kind: str
    amount: str
    report_id: str | None
    description: str | None
    created_at: datetime | None


class PurchaseRequest(BaseModel):
    """Request body for POST /api/v1/credits/purchase.

    Attributes:
        package: Credit package to buy.
        payment_reference: Reference from the payment provider.
    """

    model_config = ConfigDict(extra="forbid")

    package: PackageKey
    payment_reference: str | None = Field(default=None, max_length=255)


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transaction_id: str
    package: str
    credits_added: str
    balance: str


class ModulePriceResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    module: str
    credits: str


class CreditPackageResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str
    name: str
    credits: str
    price_try: str


class PricingResponse(BaseModel):
    """Response for GET /api/v1/pricing."""

    model_config = ConfigDict(extra="forbid")

    modules: list[ModulePriceResponse]
    packages: list[CreditPackageResponse]
