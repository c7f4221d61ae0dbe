"""Commission business logic."""

from roofcrm.services.commission import ResolvedCommissionConfig, calculate_commission_amount, to_money
from roofcrm.services.commission_engine import CommissionEngine, LeadSyncResult, TeamLeadRunResult
from roofcrm.services.commission_resolver import resolve, resolve_for_location
from roofcrm.services.eligibility import LeadRevenueFacts, evaluate, evaluate_all, load_revenue_facts
from roofcrm.services.notifications import CommissionNotice, NoticeKind, PushNotifier, get_notifier
from roofcrm.services.results import (
    CommissionError,
    CommissionNotFound,
    ConfigurationMissing,
    DuplicateLedgerRow,
    InvalidTransition,
    LockedAfterApproval,
    PayoutRejected,
)
from roofcrm.services.team_lead import Period, TeamLeadComputation, compute_team_lead_commission

__all__ = [
    "CommissionEngine",
    "LeadSyncResult",
    "TeamLeadRunResult",
    "ResolvedCommissionConfig",
    "calculate_commission_amount",
    "to_money",
    "resolve",
    "resolve_for_location",
    "LeadRevenueFacts",
    "evaluate",
    "evaluate_all",
    "load_revenue_facts",
    "CommissionNotice",
    "NoticeKind",
    "PushNotifier",
    "get_notifier",
    "CommissionError",
    "CommissionNotFound",
    "ConfigurationMissing",
    "DuplicateLedgerRow",
    "InvalidTransition",
    "LockedAfterApproval",
    "PayoutRejected",
    "Period",
    "TeamLeadComputation",
    "compute_team_lead_commission",
]
