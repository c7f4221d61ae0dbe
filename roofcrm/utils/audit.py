"""
Audit trail for admin changes to commissions, plans and location terms.

Entries are staged on the caller's session and commit together with the
change they describe, so a rolled back change leaves no entry behind.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.models.audit import AuditAction, AuditLog
from roofcrm.models.commission import LeadCommission, TeamLeadCommission

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


async def log_action(
    db: AsyncSession,
    user_id: int,
    action: AuditAction,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action_metadata: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Stage an audit entry for an admin action.

    Money, enum and date values in `action_metadata` are stored in their
    JSON form (amounts as exact decimal strings).
    """
    metadata = None
    if action_metadata:
        metadata = {key: _jsonable(value) for key, value in action_metadata.items()}

    entry = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        action_metadata=metadata,
        ip_address=ip_address,
    )
    db.add(entry)
    logger.info(
        "Audit %s by user %s on %s %s",
        action.value, user_id, target_type or "-", target_id,
    )
    return entry


async def log_commission_action(
    db: AsyncSession,
    request,
    actor_id: int,
    action: AuditAction,
    row: Union[LeadCommission, TeamLeadCommission],
    **details: Any,
) -> AuditLog:
    """
    Stage an audit entry for a change to a ledger row.

    The earner, status and amounts after the change are always recorded;
    `details` adds the action's own inputs.
    """
    metadata: dict[str, Any] = {
        "user_id": row.user_id,
        "status": row.status,
        "calculated_amount": row.calculated_amount,
        "paid_amount": row.paid_amount,
    }
    if isinstance(row, TeamLeadCommission):
        target_type = "team_lead_commission"
        metadata["location_id"] = row.location_id
    else:
        target_type = "commission"
        metadata["lead_id"] = row.lead_id
    metadata.update(details)

    return await log_action(
        db,
        user_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=row.id,
        action_metadata=metadata,
        ip_address=get_client_ip(request),
    )


def get_client_ip(request) -> Optional[str]:
    """First hop of X-Forwarded-For when behind the proxy, else the peer address."""
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    client_ip = forwarded_for.split(",")[0].strip()
    if client_ip:
        return client_ip
    return request.client.host if request.client else None
