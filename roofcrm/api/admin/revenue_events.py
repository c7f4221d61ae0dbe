"""
Revenue event hooks.

The CRM calls these after it has saved a payment, an invoice or a lead
status change. Each call re-syncs the commissions of the affected lead.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.api.deps import get_commission_engine
from roofcrm.auth.dependencies import get_current_user, require_admin
from roofcrm.db import get_db
from roofcrm.models import AuditAction, Invoice, Lead, Payment, User
from roofcrm.schemas.commission import LeadSyncResponse
from roofcrm.services.commission_engine import CommissionEngine, LeadSyncResult
from roofcrm.utils.audit import get_client_ip, log_action

router = APIRouter(prefix="/revenue-events")


async def check_lead_company(db: AsyncSession, lead_id: Optional[int], company_id: int) -> None:
    """404 unless the lead exists in the caller's company."""
    owner_company = None
    if lead_id is not None:
        owner_company = await db.scalar(select(Lead.company_id).where(Lead.id == lead_id))

    if owner_company is None or owner_company != company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lead not found",
        )

    # Release the connection; the engine runs its own transaction
    await db.commit()


def to_response(result: LeadSyncResult) -> LeadSyncResponse:
    return LeadSyncResponse(
        lead_id=result.lead_id,
        created=result.created,
        updated=result.updated,
        became_eligible=result.became_eligible,
        discrepancies=result.discrepancies,
        cancelled=result.cancelled,
        skipped_user_ids=[skipped.user_id for skipped in result.skipped],
    )


@router.post("/payments/{payment_id}/cleared", response_model=LeadSyncResponse)
async def payment_cleared(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """A payment cleared: deposit-triggered commissions may become eligible."""
    lead_id = await db.scalar(select(Payment.lead_id).where(Payment.id == payment_id))
    await check_lead_company(db, lead_id, current_user.company_id)
    return to_response(await engine.handle_payment_cleared(payment_id))


@router.post("/invoices/{invoice_id}/changed", response_model=LeadSyncResponse)
async def invoice_changed(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """An invoice was created or its total or balance changed."""
    lead_id = await db.scalar(select(Invoice.lead_id).where(Invoice.id == invoice_id))
    await check_lead_company(db, lead_id, current_user.company_id)
    return to_response(await engine.handle_invoice_changed(invoice_id))


@router.post("/leads/{lead_id}/status-changed", response_model=LeadSyncResponse)
async def lead_status_changed(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """The lead's stage or production sub-status changed."""
    await check_lead_company(db, lead_id, current_user.company_id)
    return to_response(await engine.handle_lead_status_changed(lead_id))


@router.post("/leads/{lead_id}/sync", response_model=LeadSyncResponse)
async def sync_lead(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """Full resync of a lead's commissions."""
    await check_lead_company(db, lead_id, current_user.company_id)
    return to_response(await engine.sync_lead(lead_id))


@router.delete("/leads/{lead_id}", response_model=LeadSyncResponse)
async def delete_lead(
    lead_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """Soft-delete a lead; its pending and eligible commissions are cancelled."""
    await check_lead_company(db, lead_id, current_user.company_id)
    result = await engine.soft_delete_lead(lead_id)

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.DELETE_LEAD,
        target_type="lead",
        target_id=lead_id,
        action_metadata={"cancelled_commissions": result.cancelled},
        ip_address=get_client_ip(request),
    )
    await db.commit()

    return to_response(result)


@router.delete("/invoices/{invoice_id}", response_model=LeadSyncResponse)
async def delete_invoice(
    invoice_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    engine: CommissionEngine = Depends(get_commission_engine),
):
    """Soft-delete an invoice; the lead's pending and eligible commissions are cancelled."""
    lead_id = await db.scalar(select(Invoice.lead_id).where(Invoice.id == invoice_id))
    await check_lead_company(db, lead_id, current_user.company_id)
    result = await engine.soft_delete_invoice(invoice_id)

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.DELETE_INVOICE,
        target_type="invoice",
        target_id=invoice_id,
        action_metadata={"lead_id": lead_id, "cancelled_commissions": result.cancelled},
        ip_address=get_client_ip(request),
    )
    await db.commit()

    return to_response(result)
