"""Admin commission plan API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.auth.dependencies import require_admin
from roofcrm.db import get_db
from roofcrm.models import AuditAction, CommissionPlan, RoleCommissionDefault, User, UserRole
from roofcrm.schemas.commission_plan import (
    CommissionPlanCreate,
    CommissionPlanResponse,
    CommissionPlanUpdate,
    RoleDefaultRequest,
    RoleDefaultResponse,
    check_terms,
)
from roofcrm.utils.audit import get_client_ip, log_action

router = APIRouter(prefix="/commission-plans")


async def get_company_plan(db: AsyncSession, plan_id: int, company_id: int) -> CommissionPlan:
    plan = await db.get(CommissionPlan, plan_id)
    if not plan or plan.company_id != company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Commission plan not found",
        )
    return plan


@router.get("", response_model=List[CommissionPlanResponse])
async def list_plans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    include_archived: bool = Query(False),
):
    """List the company's commission plans."""
    query = select(CommissionPlan).where(CommissionPlan.company_id == current_user.company_id)
    if not include_archived:
        query = query.where(CommissionPlan.is_active.is_(True))

    result = await db.execute(query.order_by(CommissionPlan.name))
    return result.scalars().all()


@router.post("", response_model=CommissionPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: Request,
    data: CommissionPlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Create a commission plan."""
    plan = CommissionPlan(
        company_id=current_user.company_id,
        name=data.name,
        description=data.description,
        commission_type=data.commission_type,
        commission_rate=data.commission_rate,
        flat_amount=data.flat_amount,
        paid_when=data.paid_when,
        calculate_on=data.calculate_on,
        is_active=True,
    )
    db.add(plan)
    await db.flush()

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.CREATE_PLAN,
        target_type="commission_plan",
        target_id=plan.id,
        action_metadata={"name": plan.name, "commission_type": plan.commission_type.value},
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(plan)
    return plan


@router.get("/role-defaults", response_model=List[RoleDefaultResponse])
async def list_role_defaults(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Default plan per role, used when a user has no plan assigned."""
    result = await db.execute(
        select(RoleCommissionDefault)
        .where(RoleCommissionDefault.company_id == current_user.company_id)
        .order_by(RoleCommissionDefault.role)
    )
    return result.scalars().all()


@router.put("/role-defaults/{role}", response_model=RoleDefaultResponse)
async def set_role_default(
    role: UserRole,
    request: Request,
    data: RoleDefaultRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Assign or clear the default plan of a role."""
    result = await db.execute(
        select(RoleCommissionDefault).where(
            RoleCommissionDefault.company_id == current_user.company_id,
            RoleCommissionDefault.role == role,
        )
    )
    default = result.scalar_one_or_none()

    if data.commission_plan_id is None:
        if default:
            await db.delete(default)
    else:
        plan = await get_company_plan(db, data.commission_plan_id, current_user.company_id)
        if not plan.is_active:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Archived plans cannot be used as role defaults",
            )
        if default:
            default.commission_plan_id = plan.id
        else:
            db.add(RoleCommissionDefault(
                company_id=current_user.company_id,
                role=role,
                commission_plan_id=plan.id,
            ))

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.SET_ROLE_DEFAULT,
        target_type="role",
        action_metadata={"role": role.value, "commission_plan_id": data.commission_plan_id},
        ip_address=get_client_ip(request),
    )

    await db.commit()
    return RoleDefaultResponse(role=role, commission_plan_id=data.commission_plan_id)


@router.get("/{plan_id}", response_model=CommissionPlanResponse)
async def get_plan(
    plan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return await get_company_plan(db, plan_id, current_user.company_id)


@router.patch("/{plan_id}", response_model=CommissionPlanResponse)
async def update_plan(
    plan_id: int,
    request: Request,
    data: CommissionPlanUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Update a plan.

    Commissions already on the ledger keep the terms they were created with.
    """
    plan = await get_company_plan(db, plan_id, current_user.company_id)
    changes = data.model_dump(exclude_unset=True)

    try:
        check_terms(
            changes.get("commission_type", plan.commission_type),
            changes.get("commission_rate", plan.commission_rate),
            changes.get("flat_amount", plan.flat_amount),
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    for field, value in changes.items():
        setattr(plan, field, value)

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.UPDATE_PLAN,
        target_type="commission_plan",
        target_id=plan.id,
        action_metadata={"changes": data.model_dump(mode="json", exclude_unset=True)},
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(plan)
    return plan


@router.post("/{plan_id}/archive", response_model=CommissionPlanResponse)
async def archive_plan(
    plan_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Archive a plan. Plans are never deleted; archived plans stop resolving."""
    plan = await get_company_plan(db, plan_id, current_user.company_id)
    plan.is_active = False

    await log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.ARCHIVE_PLAN,
        target_type="commission_plan",
        target_id=plan.id,
        ip_address=get_client_ip(request),
    )

    await db.commit()
    await db.refresh(plan)
    return plan
