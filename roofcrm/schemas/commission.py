"""
Commission ledger schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from roofcrm.models import (
    CalculateOn,
    CommissionStatus,
    CommissionType,
    ConfigSource,
    PaidWhen,
    ParticipantRole,
)
from roofcrm.schemas.commission_plan import check_terms


class LedgerRowResponse(BaseModel):
    """Fields shared by lead and team-lead commission rows."""

    id: int
    company_id: int
    user_id: int
    commission_plan_id: Optional[int] = None

    # Snapshotted terms
    commission_type: CommissionType
    commission_rate: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    paid_when: PaidWhen
    calculate_on: CalculateOn
    config_source: ConfigSource

    # Money
    base_amount: Decimal
    calculated_amount: Decimal
    paid_amount: Decimal

    # Status
    status: CommissionStatus
    eligible_at: Optional[datetime] = None
    approved_by_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    paid_by_user_id: Optional[int] = None
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    discrepancy_base_amount: Optional[Decimal] = None
    discrepancy_flagged_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def balance_owed(self) -> Decimal:
        return self.calculated_amount - self.paid_amount


class CommissionResponse(LedgerRowResponse):
    """Commission owed to one participant on one lead."""

    lead_id: int
    participant_role: ParticipantRole
    is_manual_override: bool
    triggered_by_payment_id: Optional[int] = None


class CommissionListResponse(BaseModel):
    """Paginated list of commissions."""

    items: List[CommissionResponse]
    total: int
    page: int
    per_page: int
    pages: int


class CommissionSummaryResponse(BaseModel):
    """Totals of a lead's commissions."""

    lead_id: int
    total_owed: Decimal
    total_paid: Decimal
    total_pending: Decimal
    total_eligible: Decimal
    total_approved: Decimal
    total_cancelled: Decimal
    count_pending: int
    count_eligible: int
    count_approved: int
    count_paid: int
    count_cancelled: int


class BulkApproveRequest(BaseModel):
    commission_ids: List[int] = Field(..., min_length=1, max_length=500)


class BulkApproveResponse(BaseModel):
    approved: List[int]
    rejected: List[dict]


class PayoutRequest(BaseModel):
    """Record a payout; amount defaults to the full balance owed."""

    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = Field(None, max_length=100)


class CommissionOverrideRequest(BaseModel):
    """Admin-entered terms replacing the resolved ones on a single row."""

    commission_type: CommissionType
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=4)
    flat_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    paid_when: PaidWhen
    calculate_on: CalculateOn = CalculateOn.REVENUE
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_terms(self):
        check_terms(self.commission_type, self.commission_rate, self.flat_amount)
        return self


class CancelCommissionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RecalculateRequest(BaseModel):
    base_amount: Decimal = Field(..., ge=0, decimal_places=2)


class LeadSyncResponse(BaseModel):
    """Outcome of a revenue event for one lead."""

    lead_id: Optional[int] = None
    created: List[int] = []
    updated: List[int] = []
    became_eligible: List[int] = []
    discrepancies: List[int] = []
    cancelled: List[int] = []
    skipped_user_ids: List[int] = []


class TeamLeadRunRequest(BaseModel):
    """Compute a team lead's override for the half-open period [period_start, period_end)."""

    location_id: int
    user_id: int
    period_start: date
    period_end: date

    @model_validator(mode="after")
    def validate_period(self):
        if self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start")
        return self


class TeamLeadCommissionResponse(LedgerRowResponse):
    location_id: int
    period_start: date
    period_end: date
    deal_count: int
    include_own_sales: bool


class TeamLeadRunResponse(BaseModel):
    commission: Optional[TeamLeadCommissionResponse] = None
    lead_ids: List[int] = []
    became_eligible: bool = False
    skipped_reason: Optional[str] = None
