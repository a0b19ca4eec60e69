"""Pricing API router.

Public price list: credits per analysis module and purchasable packages.
"""

from fastapi import APIRouter

from expertise.core.pricing import CREDIT_PACKAGES, MODULE_PRICES
from expertise.core.responses import DataResponse
from expertise.schemas.credits import (
    CreditPackageResponse,
    ModulePriceResponse,
    PricingResponse,
)

router = APIRouter()

_CREDITS_FMT = "{:.2f}"


@router.get("")
async def get_pricing() -> DataResponse[PricingResponse]:
    """Return module prices and credit packages."""
    return DataResponse(
        data=PricingResponse(
            modules=[
                ModulePriceResponse(
                    module=module.value,
                    credits=_CREDITS_FMT.format(price),
                )
                for module, price in MODULE_PRICES.items()
            ],
            packages=[
                CreditPackageResponse(
                    key=package.key,
                    name=package.name,
                    credits=_CREDITS_FMT.format(package.credits),
                    price_try=_CREDITS_FMT.format(package.price_try),
                )
                for package in CREDIT_PACKAGES.values()
            ],
        )
    )
