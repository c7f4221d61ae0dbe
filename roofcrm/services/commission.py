"""
Commission amount calculation.

Rules:
- flat_amount: exactly the snapshotted flat amount, whatever the base
- percentage: base * rate / 100, rounded half-up to cents
- custom: the amount an admin entered (0.00 until one is entered)
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from roofcrm.models.commission import ConfigSource
from roofcrm.models.commission_plan import CalculateOn, CommissionType, PaidWhen

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Union[Decimal, int, str, None]) -> Decimal:
    """Round a value to currency precision (half-up)."""
    if value is None:
        return ZERO
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_commission_amount(
    commission_type: CommissionType,
    base_amount: Decimal,
    commission_rate: Optional[Decimal] = None,
    flat_amount: Optional[Decimal] = None,
) -> Decimal:
    """Calculate the amount owed for a set of snapshotted terms.

    Args:
        commission_type: How the amount is derived
        base_amount: Revenue figure the commission is computed against
        commission_rate: Percent (10 = 10%), used by percentage terms
        flat_amount: Fixed amount, used by flat_amount and custom terms

    Returns:
        Commission amount rounded to cents
    """
    if commission_type == CommissionType.PERCENTAGE:
        if commission_rate is None:
            return ZERO
        return to_money(Decimal(base_amount) * Decimal(commission_rate) / HUNDRED)

    # flat_amount and custom both carry their amount in flat_amount
    return to_money(flat_amount)


@dataclass(frozen=True)
class ResolvedCommissionConfig:
    """Effective commission terms for one participant."""

    commission_type: CommissionType
    paid_when: PaidWhen
    source: ConfigSource
    commission_rate: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    commission_plan_id: Optional[int] = None
    calculate_on: CalculateOn = CalculateOn.REVENUE

    @property
    def is_complete(self) -> bool:
        """Percentage terms need a rate, flat terms need an amount."""
        if self.commission_type == CommissionType.PERCENTAGE:
            return self.commission_rate is not None
        if self.commission_type == CommissionType.FLAT_AMOUNT:
            return self.flat_amount is not None
        return True

    def amount_for(self, base_amount: Decimal) -> Decimal:
        return calculate_commission_amount(
            self.commission_type,
            base_amount,
            commission_rate=self.commission_rate,
            flat_amount=self.flat_amount,
        )
