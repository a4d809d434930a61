from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from crm.database import get_db
from crm.models.product import AdjustmentReason
from crm.schemas.common import MAX_ID
from crm.schemas.product import InventoryAdjustmentCreate, InventoryAdjustmentResponse
from crm.services import product_service
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role

router = APIRouter()


@router.get("/adjustments", response_model=List[InventoryAdjustmentResponse])
def get_inventory_adjustments(
    product_id: Optional[int] = Query(None, alias="productId", ge=1, le=MAX_ID),
    reason: Optional[AdjustmentReason] = Query(None),
    skip: int = Query(0, ge=0, le=MAX_ID),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return product_service.get_adjustments(
        db=db,
        tenant_id=ctx.tenant_id,
        product_id=product_id,
        reason=reason,
        skip=skip,
        limit=limit
    )


@router.post("/adjustments", response_model=InventoryAdjustmentResponse, status_code=status.HTTP_201_CREATED)
def create_inventory_adjustment(
    adjustment: InventoryAdjustmentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    """
    Record a manual stock movement for a product.

    Raises:
        NotFound 404: If the product is not in the tenant
        Validation 400: If stock is not tracked for an increase or decrease,
            or the quantity is out of range
    """
    logger.info(
        f"Adjusting stock: product_id={adjustment.product_id}, "
        f"type={adjustment.adjustment_type.value}, tenant_id={ctx.tenant_id}"
    )
    return product_service.adjust_stock(
        db=db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        adjustment=adjustment
    )
