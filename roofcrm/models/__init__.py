"""
Database models for the commission engine.

All models are exported here for convenient imports:
    from roofcrm.models import Lead, LeadCommission, CommissionPlan, etc.
"""

from roofcrm.models.audit import AuditAction, AuditLog
from roofcrm.models.base import Base, SoftDeleteMixin, TimestampMixin
from roofcrm.models.billing import Invoice, Payment
from roofcrm.models.commission import (
    LOCKED_STATUSES,
    OPEN_STATUSES,
    CommissionStatus,
    ConfigSource,
    LeadCommission,
    ParticipantRole,
    TeamLeadCommission,
)
from roofcrm.models.commission_plan import (
    CalculateOn,
    CommissionPlan,
    CommissionType,
    PaidWhen,
    RoleCommissionDefault,
)
from roofcrm.models.lead import CLOSED_DEAL_STAGES, Lead, LeadStage
from roofcrm.models.location import Location, LocationCommissionSetting, LocationUser
from roofcrm.models.user import ADMIN_ROLES, User, UserRole

__all__ = [
    # Base
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    # User
    "User",
    "UserRole",
    "ADMIN_ROLES",
    # Location
    "Location",
    "LocationUser",
    "LocationCommissionSetting",
    # Lead
    "Lead",
    "LeadStage",
    "CLOSED_DEAL_STAGES",
    # Billing
    "Invoice",
    "Payment",
    # Plans
    "CalculateOn",
    "CommissionPlan",
    "CommissionType",
    "PaidWhen",
    "RoleCommissionDefault",
    # Ledger
    "LeadCommission",
    "TeamLeadCommission",
    "CommissionStatus",
    "ConfigSource",
    "ParticipantRole",
    "OPEN_STATUSES",
    "LOCKED_STATUSES",
    # Audit
    "AuditLog",
    "AuditAction",
]
