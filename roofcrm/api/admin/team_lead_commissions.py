"""Admin team-lead override commission API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.api.deps import get_commission_engine
from roofcrm.api.errors import raise_for_result
from roofcrm.auth.dependencies import require_admin
from roofcrm.db import get_db
from roofcrm.models import AuditAction, Location, TeamLeadCommission, User
from roofcrm.schemas.commission import (
    CancelCommissionRequest,
    PayoutRequest,
    TeamLeadCommissionResponse,
    TeamLeadRunRequest,
    TeamLeadRunResponse,
)
from roofcrm.services import commission_ledger as ledger
from roofcrm.services.commission_engine import CommissionEngine
from roofcrm.services.team_lead import Period
from roofcrm.utils.audit import get_client_ip, log_action, log_commission_action

router = APIRouter(prefix="/team-lead-commissions")


async def get_company_row(db: AsyncSession, commission_id: int, company_id: int) -> TeamLeadCommission:
    row = await ledger.get_commission(db, commission_id, model=TeamLeadCommission)
    if not row or row.company_id != company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Team lead commission not found",
        )
    return row


@router.get("", response_model=List[TeamLeadCommissionResponse])
async def list_team_lead_commissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    location_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
):
    query = select(TeamLeadCommission).where(
        TeamLeadCommission.company_id == current_user.company_id,
        TeamLeadCommission.deleted_at.is_(None),
    )
    if location_id is not None:
        query = query.where(TeamLeadCommission.location_id == location_id)
    if user_id is not None:
        query = query.where(TeamLeadCommission.user_id == user_id)

    result = await db.execute(
        query.order_by(TeamLeadCommission.period_start.desc(), TeamLeadCommission.id.desc())
    )
    return result.scalars().all()


@router.post("/run", response_model=TeamLeadRunResponse)
async def run_team_lead_commission(
    request: Request,
    data: TeamLeadRunRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """
    Compute a team lead's override commission for a period and store it.

    Running the same period again updates the existing row.
    """
    location = await db.get(Location, data.location_id)
    if not location or location.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Location not found",
        )
    # The engine works in its own transaction
    await db.commit()

    run = await engine.run_team_lead_commission(
        data.location_id,
        data.user_id,
        Period(start=data.period_start, end=data.period_end),
    )

    if run.skipped is not None:
        return TeamLeadRunResponse(skipped_reason=run.skipped.message)

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.RUN_TEAM_LEAD_COMMISSION,
        target_type="team_lead_commission",
        target_id=run.commission.id,
        action_metadata={
            "location_id": data.location_id,
            "user_id": data.user_id,
            "period_start": data.period_start,
            "period_end": data.period_end,
            "deal_count": run.computation.deal_count,
            "amount": run.commission.calculated_amount,
        },
        ip_address=get_client_ip(request),
    )
    await db.commit()

    return TeamLeadRunResponse(
        commission=TeamLeadCommissionResponse.model_validate(run.commission),
        lead_ids=run.computation.lead_ids,
        became_eligible=run.became_eligible,
    )


@router.post("/{commission_id}/approve", response_model=TeamLeadCommissionResponse)
async def approve_team_lead_commission(
    commission_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    await get_company_row(db, commission_id, current_user.company_id)
    row = raise_for_result(
        await ledger.approve(db, commission_id, current_user.id, model=TeamLeadCommission)
    )

    await log_commission_action(db, request, current_user.id, AuditAction.APPROVE_COMMISSION, row)

    await db.commit()
    await db.refresh(row)
    return row


@router.post("/{commission_id}/mark-eligible", response_model=TeamLeadCommissionResponse)
async def mark_team_lead_commission_eligible(
    commission_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    await get_company_row(db, commission_id, current_user.company_id)
    row = raise_for_result(await ledger.mark_eligible(db, commission_id, model=TeamLeadCommission))

    await log_commission_action(db, request, current_user.id, AuditAction.MARK_COMMISSION_ELIGIBLE, row)

    await db.commit()
    await db.refresh(row)
    return row


@router.post("/{commission_id}/payout", response_model=TeamLeadCommissionResponse)
async def record_team_lead_payout(
    commission_id: int,
    request: Request,
    data: PayoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    await get_company_row(db, commission_id, current_user.company_id)
    row = raise_for_result(await ledger.record_payout(
        db,
        commission_id,
        paid_by_user_id=current_user.id,
        amount=data.amount,
        paid_at=data.paid_at,
        reference=data.payment_reference,
        model=TeamLeadCommission,
    ))

    await log_commission_action(
        db, request, current_user.id, AuditAction.RECORD_COMMISSION_PAYOUT, row,
        reference=data.payment_reference,
    )

    await db.commit()
    await db.refresh(row)
    return row


@router.post("/{commission_id}/cancel", response_model=TeamLeadCommissionResponse)
async def cancel_team_lead_commission(
    commission_id: int,
    request: Request,
    data: CancelCommissionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    await get_company_row(db, commission_id, current_user.company_id)
    row = raise_for_result(
        await ledger.cancel(db, commission_id, reason=data.reason, model=TeamLeadCommission)
    )

    await log_commission_action(
        db, request, current_user.id, AuditAction.CANCEL_COMMISSION, row, reason=data.reason
    )

    await db.commit()
    await db.refresh(row)
    return row
