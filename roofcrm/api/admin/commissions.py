"""Admin lead commission API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.api.errors import raise_for_result
from roofcrm.auth.dependencies import require_admin
from roofcrm.db import get_db
from roofcrm.models import (
    AuditAction,
    CommissionStatus,
    ConfigSource,
    Lead,
    LeadCommission,
    PaidWhen,
    User,
)
from roofcrm.schemas.commission import (
    BulkApproveRequest,
    BulkApproveResponse,
    CancelCommissionRequest,
    CommissionListResponse,
    CommissionOverrideRequest,
    CommissionResponse,
    CommissionSummaryResponse,
    PayoutRequest,
    RecalculateRequest,
)
from roofcrm.services import commission_ledger as ledger
from roofcrm.services.commission import ResolvedCommissionConfig
from roofcrm.services.notifications import CommissionNotice, NoticeKind, PushNotifier, get_notifier
from roofcrm.utils.audit import log_commission_action

router = APIRouter(prefix="/commissions")


async def get_company_commission(db: AsyncSession, commission_id: int, company_id: int) -> LeadCommission:
    commission = await ledger.get_commission(db, commission_id)
    if not commission or commission.company_id != company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Commission not found",
        )
    return commission


async def build_notice(db: AsyncSession, commission: LeadCommission, kind: NoticeKind) -> CommissionNotice:
    lead = await db.get(Lead, commission.lead_id)
    return CommissionNotice(
        kind=kind,
        user_id=commission.user_id,
        commission_id=commission.id,
        amount=commission.calculated_amount,
        lead_id=commission.lead_id,
        customer_name=lead.full_name if lead else None,
    )


@router.get("", response_model=CommissionListResponse)
async def list_commissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: Optional[int] = Query(None),
    lead_id: Optional[int] = Query(None),
    status_filter: Optional[List[CommissionStatus]] = Query(None, alias="status"),
    paid_when: Optional[PaidWhen] = Query(None),
    discrepancies_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    """List commissions with filters."""
    query = ledger.commission_query(ledger.CommissionFilters(
        company_id=current_user.company_id,
        user_id=user_id,
        lead_id=lead_id,
        statuses=status_filter or [],
        paid_when=paid_when,
        discrepancies_only=discrepancies_only,
    ))

    # Count total
    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    # Apply sorting and pagination
    query = query.order_by(LeadCommission.created_at.desc(), LeadCommission.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    result = await db.execute(query)
    items = [CommissionResponse.model_validate(row) for row in result.scalars().all()]

    return CommissionListResponse(
        items=items,
        total=total or 0,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.get("/leads/{lead_id}/summary", response_model=CommissionSummaryResponse)
async def lead_summary(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Commission totals of a lead."""
    lead = await db.get(Lead, lead_id)
    if not lead or lead.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lead not found",
        )

    summary = await ledger.summarize_lead(db, lead_id)
    return CommissionSummaryResponse(lead_id=lead_id, **vars(summary))


@router.post("/bulk-approve", response_model=BulkApproveResponse)
async def bulk_approve(
    request: Request,
    data: BulkApproveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    notifier: PushNotifier = Depends(get_notifier),
):
    """Approve every eligible commission in the list; the rest are reported back."""
    approved, rejected = await ledger.bulk_approve(
        db,
        data.commission_ids,
        approver_user_id=current_user.id,
        company_id=current_user.company_id,
    )

    for commission in approved:
        await log_commission_action(
            db, request, current_user.id, AuditAction.APPROVE_COMMISSION, commission, bulk=True
        )

    notices = [await build_notice(db, commission, NoticeKind.APPROVED) for commission in approved]
    await db.commit()
    notifier.notify(notices)

    return BulkApproveResponse(
        approved=[commission.id for commission in approved],
        rejected=[
            {"commission_id": error.commission_id, "reason": error.message}
            for error in rejected
        ],
    )


@router.get("/{commission_id}", response_model=CommissionResponse)
async def get_commission(
    commission_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return await get_company_commission(db, commission_id, current_user.company_id)


@router.post("/{commission_id}/approve", response_model=CommissionResponse)
async def approve_commission(
    commission_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    notifier: PushNotifier = Depends(get_notifier),
):
    """Approve an eligible commission for payout."""
    await get_company_commission(db, commission_id, current_user.company_id)
    commission = raise_for_result(await ledger.approve(db, commission_id, current_user.id))

    await log_commission_action(
        db, request, current_user.id, AuditAction.APPROVE_COMMISSION, commission
    )

    notice = await build_notice(db, commission, NoticeKind.APPROVED)
    await db.commit()
    await db.refresh(commission)
    notifier.notify([notice])
    return commission


@router.post("/{commission_id}/mark-eligible", response_model=CommissionResponse)
async def mark_eligible(
    commission_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Manually mark a pending commission eligible (custom triggers)."""
    await get_company_commission(db, commission_id, current_user.company_id)
    commission = raise_for_result(await ledger.mark_eligible(db, commission_id))

    await log_commission_action(
        db, request, current_user.id, AuditAction.MARK_COMMISSION_ELIGIBLE, commission
    )

    await db.commit()
    await db.refresh(commission)
    return commission


@router.post("/{commission_id}/payout", response_model=CommissionResponse)
async def record_payout(
    commission_id: int,
    request: Request,
    data: PayoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    notifier: PushNotifier = Depends(get_notifier),
):
    """Record a (partial or full) payout of an approved commission."""
    await get_company_commission(db, commission_id, current_user.company_id)
    commission = raise_for_result(await ledger.record_payout(
        db,
        commission_id,
        paid_by_user_id=current_user.id,
        amount=data.amount,
        paid_at=data.paid_at,
        reference=data.payment_reference,
    ))

    await log_commission_action(
        db, request, current_user.id, AuditAction.RECORD_COMMISSION_PAYOUT, commission,
        amount=data.amount if data.amount is not None else "balance",
        reference=data.payment_reference,
    )

    notices = []
    if commission.status == CommissionStatus.PAID:
        notices.append(await build_notice(db, commission, NoticeKind.PAID))

    await db.commit()
    await db.refresh(commission)
    notifier.notify(notices)
    return commission


@router.post("/{commission_id}/override", response_model=CommissionResponse)
async def override_commission(
    commission_id: int,
    request: Request,
    data: CommissionOverrideRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Replace a commission's terms by hand. Only pending and eligible rows."""
    await get_company_commission(db, commission_id, current_user.company_id)

    terms = ResolvedCommissionConfig(
        commission_type=data.commission_type,
        paid_when=data.paid_when,
        source=ConfigSource.MANUAL_OVERRIDE,
        commission_rate=data.commission_rate,
        flat_amount=data.flat_amount,
        calculate_on=data.calculate_on,
    )
    commission = raise_for_result(
        await ledger.apply_manual_override(db, commission_id, terms, notes=data.notes)
    )

    await log_commission_action(
        db, request, current_user.id, AuditAction.OVERRIDE_COMMISSION, commission,
        override=data.model_dump(mode="json"),
    )

    await db.commit()
    await db.refresh(commission)
    return commission


@router.post("/{commission_id}/recalculate", response_model=CommissionResponse)
async def recalculate_commission(
    commission_id: int,
    request: Request,
    data: RecalculateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Recompute a commission against a new base amount."""
    existing = await get_company_commission(db, commission_id, current_user.company_id)
    old_amount = existing.calculated_amount

    commission = raise_for_result(await ledger.recalculate(db, commission_id, data.base_amount))

    await log_commission_action(
        db, request, current_user.id, AuditAction.RECALCULATE_COMMISSION, commission,
        base_amount=commission.base_amount,
        old_amount=old_amount,
    )

    await db.commit()
    await db.refresh(commission)
    return commission


@router.post("/{commission_id}/cancel", response_model=CommissionResponse)
async def cancel_commission(
    commission_id: int,
    request: Request,
    data: CancelCommissionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    await get_company_commission(db, commission_id, current_user.company_id)
    commission = raise_for_result(await ledger.cancel(db, commission_id, reason=data.reason))

    await log_commission_action(
        db, request, current_user.id, AuditAction.CANCEL_COMMISSION, commission, reason=data.reason
    )

    await db.commit()
    await db.refresh(commission)
    return commission


@router.delete("/{commission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_commission(
    commission_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Soft-delete a commission that has not been approved."""
    await get_company_commission(db, commission_id, current_user.company_id)
    commission = raise_for_result(await ledger.soft_delete(db, commission_id))

    await log_commission_action(
        db, request, current_user.id, AuditAction.DELETE_COMMISSION, commission
    )

    await db.commit()
