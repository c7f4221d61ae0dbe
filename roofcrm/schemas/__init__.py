"""Pydantic schemas for request/response validation."""

from roofcrm.schemas.commission import (
    BulkApproveRequest,
    BulkApproveResponse,
    CancelCommissionRequest,
    CommissionListResponse,
    CommissionOverrideRequest,
    CommissionResponse,
    CommissionSummaryResponse,
    LeadSyncResponse,
    PayoutRequest,
    RecalculateRequest,
    TeamLeadCommissionResponse,
    TeamLeadRunRequest,
    TeamLeadRunResponse,
)
from roofcrm.schemas.commission_plan import (
    CommissionPlanCreate,
    CommissionPlanResponse,
    CommissionPlanUpdate,
    RoleDefaultRequest,
    RoleDefaultResponse,
)
from roofcrm.schemas.location_commission import (
    LocationCommissionResponse,
    LocationCommissionUpdate,
)

__all__ = [
    # Plans
    "CommissionPlanCreate",
    "CommissionPlanUpdate",
    "CommissionPlanResponse",
    "RoleDefaultRequest",
    "RoleDefaultResponse",
    # Location overrides
    "LocationCommissionUpdate",
    "LocationCommissionResponse",
    # Ledger
    "CommissionResponse",
    "CommissionListResponse",
    "CommissionSummaryResponse",
    "BulkApproveRequest",
    "BulkApproveResponse",
    "PayoutRequest",
    "CommissionOverrideRequest",
    "CancelCommissionRequest",
    "RecalculateRequest",
    "LeadSyncResponse",
    # Team lead
    "TeamLeadRunRequest",
    "TeamLeadRunResponse",
    "TeamLeadCommissionResponse",
]
