from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from crm.database import get_db
from crm.schemas.common import MAX_ID
from crm.schemas.loyalty import (
    LoyaltyAccountResponse,
    LoyaltyAccrueRequest,
    LoyaltyAdjustRequest,
    LoyaltyBalanceResponse,
    LoyaltyPointsRequest,
    LoyaltyProgramCreate,
    LoyaltyProgramResponse,
    LoyaltyProgramUpdate,
)
from crm.services import loyalty_service
from crm.core.feature_flags import FeatureFlag, require_feature
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.dependencies import ResourceId

router = APIRouter()

loyalty_enabled = require_feature(FeatureFlag.LOYALTY)


# Programs are declared before /{customer_id} so the literal path wins

@router.get("/programs", response_model=List[LoyaltyProgramResponse])
def get_loyalty_programs(
    active: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0, le=MAX_ID),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer)),
    _enabled: None = Depends(loyalty_enabled)
):
    return loyalty_service.get_programs(db=db, tenant_id=ctx.tenant_id, is_active=active, skip=skip, limit=limit)


@router.post("/programs", response_model=LoyaltyProgramResponse, status_code=status.HTTP_201_CREATED)
def create_loyalty_program(
    program_data: LoyaltyProgramCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin)),
    _enabled: None = Depends(loyalty_enabled)
):
    logger.info(f"Creating loyalty program: name={program_data.name}, tenant_id={ctx.tenant_id}")
    return loyalty_service.create_program(
        db=db, tenant_id=ctx.tenant_id, program_data=program_data, user_id=ctx.user_id
    )


@router.get("/programs/{program_id}", response_model=LoyaltyProgramResponse)
def get_loyalty_program(
    program_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer)),
    _enabled: None = Depends(loyalty_enabled)
):
    return loyalty_service.get_program(db=db, program_id=program_id, tenant_id=ctx.tenant_id)


@router.put("/programs/{program_id}", response_model=LoyaltyProgramResponse)
def update_loyalty_program(
    program_id: ResourceId,
    program_data: LoyaltyProgramUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin)),
    _enabled: None = Depends(loyalty_enabled)
):
    """
    Change a program's rules. New rates and expiry apply to points credited
    from now on.
    """
    return loyalty_service.update_program(
        db=db, program_id=program_id, program_data=program_data, tenant_id=ctx.tenant_id
    )


@router.delete("/programs/{program_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_loyalty_program(
    program_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin)),
    _enabled: None = Depends(loyalty_enabled)
):
    loyalty_service.delete_program(db=db, program_id=program_id, tenant_id=ctx.tenant_id)
    return None


@router.get("", response_model=List[LoyaltyBalanceResponse])
def get_loyalty_balances(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer)),
    _enabled: None = Depends(loyalty_enabled)
):
    return loyalty_service.get_balances(db=db, tenant_id=ctx.tenant_id)


@router.get("/{customer_id}", response_model=LoyaltyAccountResponse)
def get_loyalty_account(
    customer_id: ResourceId,
    program_id: Optional[int] = Query(None, alias="programId", ge=1, le=MAX_ID),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer)),
    _enabled: None = Depends(loyalty_enabled)
):
    return loyalty_service.get_account(
        db=db, customer_id=customer_id, tenant_id=ctx.tenant_id, program_id=program_id
    )


@router.post("/accrue", response_model=LoyaltyBalanceResponse, status_code=status.HTTP_201_CREATED)
def accrue_points(
    request: LoyaltyAccrueRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    _enabled: None = Depends(loyalty_enabled)
):
    """
    Add points to a customer's balance, opening a loyalty account on first use.

    Raises:
        Validation 400: If the program is inactive or the order cannot earn points
        Conflict 409: If the order already earned points
    """
    return loyalty_service.accrue(db=db, tenant_id=ctx.tenant_id, request=request)


@router.post("/redeem", response_model=LoyaltyBalanceResponse)
def redeem_points(
    request: LoyaltyPointsRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    _enabled: None = Depends(loyalty_enabled)
):
    """
    Spend points from a customer's balance.

    Raises:
        NotFound 404: If the customer has no loyalty account
        Validation 400: "Insufficient points" if the balance is too low, or
            fewer points than the program minimum were requested
    """
    return loyalty_service.redeem(db=db, tenant_id=ctx.tenant_id, request=request)


@router.post("/adjust", response_model=LoyaltyBalanceResponse)
def adjust_points(
    request: LoyaltyAdjustRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    _enabled: None = Depends(loyalty_enabled)
):
    logger.info(f"Adjusting loyalty points: customer_id={request.customer_id}, by={ctx.user_id}")
    return loyalty_service.adjust(db=db, tenant_id=ctx.tenant_id, request=request)
