"""Admin per-location commission settings API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.auth.dependencies import require_admin
from roofcrm.db import get_db
from roofcrm.models import AuditAction, Location, LocationCommissionSetting, User
from roofcrm.schemas.location_commission import LocationCommissionResponse, LocationCommissionUpdate
from roofcrm.utils.audit import get_client_ip, log_action

router = APIRouter(prefix="/locations")


async def get_company_location(db: AsyncSession, location_id: int, company_id: int) -> Location:
    location = await db.get(Location, location_id)
    if not location or location.company_id != company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Location not found",
        )
    return location


@router.get("/{location_id}/commission-settings", response_model=List[LocationCommissionResponse])
async def list_location_settings(
    location_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Commission settings of every configured user at a location."""
    await get_company_location(db, location_id, current_user.company_id)

    result = await db.execute(
        select(LocationCommissionSetting)
        .where(LocationCommissionSetting.location_id == location_id)
        .order_by(LocationCommissionSetting.user_id)
    )
    return result.scalars().all()


@router.put("/{location_id}/commission-settings/{user_id}", response_model=LocationCommissionResponse)
async def upsert_location_setting(
    location_id: int,
    user_id: int,
    request: Request,
    data: LocationCommissionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Create or replace a user's commission settings at a location.

    Only future resolutions see the change; existing commissions keep
    their snapshotted terms.
    """
    location = await get_company_location(db, location_id, current_user.company_id)

    user = await db.get(User, user_id)
    if not user or user.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    result = await db.execute(
        select(LocationCommissionSetting).where(
            LocationCommissionSetting.location_id == location.id,
            LocationCommissionSetting.user_id == user.id,
        )
    )
    setting = result.scalar_one_or_none()
    if setting is None:
        setting = LocationCommissionSetting(
            company_id=location.company_id,
            location_id=location.id,
            user_id=user.id,
        )
        db.add(setting)

    for field, value in data.model_dump().items():
        setattr(setting, field, value)

    await db.flush()

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.UPDATE_LOCATION_COMMISSION,
        target_type="location_commission_setting",
        target_id=setting.id,
        action_metadata={
            "location_id": location.id,
            "user_id": user.id,
            **data.model_dump(mode="json"),
        },
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(setting)
    return setting
