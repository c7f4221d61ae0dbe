"""
Commission plan schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from roofcrm.models import CalculateOn, CommissionType, PaidWhen, UserRole


def check_terms(commission_type: Optional[CommissionType], rate: Optional[Decimal], flat: Optional[Decimal]) -> None:
    """Percentage terms need a rate, flat terms need an amount."""
    if commission_type == CommissionType.PERCENTAGE and rate is None:
        raise ValueError("commission_rate is required for percentage commissions")
    if commission_type == CommissionType.FLAT_AMOUNT and flat is None:
        raise ValueError("flat_amount is required for flat amount commissions")


class CommissionPlanCreate(BaseModel):
    """Request to create a commission plan."""

    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    commission_type: CommissionType
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=4)
    flat_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    paid_when: PaidWhen = PaidWhen.WHEN_FINAL_PAYMENT
    calculate_on: CalculateOn = CalculateOn.REVENUE

    @model_validator(mode="after")
    def validate_terms(self):
        check_terms(self.commission_type, self.commission_rate, self.flat_amount)
        return self


class CommissionPlanUpdate(BaseModel):
    """
    Partial plan update.

    Editing a plan never changes commissions already on the ledger.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    commission_type: Optional[CommissionType] = None
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=4)
    flat_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    paid_when: Optional[PaidWhen] = None
    calculate_on: Optional[CalculateOn] = None
    is_active: Optional[bool] = None


class CommissionPlanResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    commission_type: CommissionType
    commission_rate: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    paid_when: PaidWhen
    calculate_on: CalculateOn
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RoleDefaultRequest(BaseModel):
    """Assign (or clear, with null) the default plan of a role."""

    commission_plan_id: Optional[int] = None


class RoleDefaultResponse(BaseModel):
    role: UserRole
    commission_plan_id: Optional[int] = None

    model_config = {"from_attributes": True}
