"""Analysis modules and their credit prices.

One credit is priced at one Turkish lira. Every analysis debits its module
price once, up front; the comprehensive report debits a single flat price
that covers all of its modules.

Prices:
- Paint:          49 credits
- Damage:         69 credits
- Engine sound:   79 credits
- Value:          49 credits
- Comprehensive: 179 credits (flat, cheaper than the 246 of the four parts)
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

# =============================================================================
# Module Types
# =============================================================================


class ModuleType(Enum):
    """Analysis modules a report can be produced for.

    Values match the check constraint on reports.module_type.
    """

    PAINT = "paint"
    DAMAGE = "damage"
    AUDIO = "audio"
    VALUE = "value"
    COMPREHENSIVE = "comprehensive"

    @classmethod
    def from_string(cls, value: str) -> "ModuleType":
        """Convert a database or path string to enum.

        Args:
            value: Module type string.

        Returns:
            The corresponding ModuleType.

        Raises:
            ValueError: If the string doesn't match any module.
        """
        for module in cls:
            if module.value == value:
                return module
        valid = [m.value for m in cls]
        raise ValueError(f"Invalid module type: '{value}'. Valid: {valid}")


# Modules a comprehensive report fans out to
COMPONENT_MODULES: tuple[ModuleType, ...] = (
    ModuleType.PAINT,
    ModuleType.DAMAGE,
    ModuleType.AUDIO,
    ModuleType.VALUE,
)


# =============================================================================
# Module Prices
# =============================================================================

MODULE_PRICES: dict[ModuleType, Decimal] = {
    ModuleType.PAINT: Decimal("49"),
    ModuleType.DAMAGE: Decimal("69"),
    ModuleType.AUDIO: Decimal("79"),
    ModuleType.VALUE: Decimal("49"),
    ModuleType.COMPREHENSIVE: Decimal("179"),
}

# Every module must be priced (RuntimeError survives python -O, unlike assert)
_UNPRICED = [m.value for m in ModuleType if MODULE_PRICES.get(m, Decimal(0)) <= 0]
if _UNPRICED:
    raise RuntimeError(f"Modules without a positive price: {_UNPRICED}")


# =============================================================================
# Credit Packages
# =============================================================================


@dataclass(frozen=True)
class CreditPackage:
    """A purchasable bundle of credits.

    Attributes:
        key: Stable identifier used by the purchase endpoint.
        name: Display name.
        credits: Credits added to the account.
        price_try: Price charged in Turkish lira.
    """

    key: str
    name: str
    credits: Decimal
    price_try: Decimal


CREDIT_PACKAGES: dict[str, CreditPackage] = {
    "starter": CreditPackage(
        key="starter",
        name="Starter",
        credits=Decimal("150"),
        price_try=Decimal("149"),
    ),
    "professional": CreditPackage(
        key="professional",
        name="Professional",
        credits=Decimal("750"),
        price_try=Decimal("649"),
    ),
    "enterprise": CreditPackage(
        key="enterprise",
        name="Enterprise",
        credits=Decimal("1500"),
        price_try=Decimal("1199"),
    ),
}
