"""
Per-location commission override schemas.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from roofcrm.models import CalculateOn, CommissionType, PaidWhen


class LocationCommissionUpdate(BaseModel):
    """
    Upsert of a user's commission settings at a location.

    Null override fields fall through to the user's plan.
    """

    commission_type: Optional[CommissionType] = None
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=4)
    flat_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    paid_when: Optional[PaidWhen] = None
    calculate_on: Optional[CalculateOn] = None
    commission_enabled: bool = True
    team_lead_for_location: bool = False
    include_own_sales: bool = False
    office_manager_for_location: bool = False


class LocationCommissionResponse(BaseModel):
    id: int
    location_id: int
    user_id: int
    commission_type: Optional[CommissionType] = None
    commission_rate: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    paid_when: Optional[PaidWhen] = None
    calculate_on: Optional[CalculateOn] = None
    commission_enabled: bool
    team_lead_for_location: bool
    include_own_sales: bool
    office_manager_for_location: bool

    model_config = {"from_attributes": True}
