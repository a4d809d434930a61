from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from crm.database import get_db
from crm.models.delivery import DeliveryStatus
from crm.schemas.delivery import DeliveryCreate, DeliveryUpdate, DeliveryResponse
from crm.services import delivery_service
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.dependencies import ResourceId
from crm.schemas.common import MAX_ID

router = APIRouter()


@router.post("", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
def create_delivery(
    delivery_data: DeliveryCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    logger.info(f"Creating delivery: method={delivery_data.method.value}, tenant_id={ctx.tenant_id}")
    return delivery_service.create_delivery(db=db, delivery_data=delivery_data, tenant_id=ctx.tenant_id)


@router.get("", response_model=List[DeliveryResponse])
def get_deliveries(
    delivery_status: Optional[DeliveryStatus] = Query(None, alias="status"),
    order_id: Optional[int] = Query(None, alias="orderId", ge=1, le=MAX_ID),
    skip: int = Query(0, ge=0, le=MAX_ID),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    """
    Retrieve deliveries, optionally filtered by status or order.
    """
    return delivery_service.get_deliveries(
        db=db,
        tenant_id=ctx.tenant_id,
        status=delivery_status,
        order_id=order_id,
        skip=skip,
        limit=limit
    )


@router.get("/{delivery_id}", response_model=DeliveryResponse)
def get_delivery(
    delivery_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return delivery_service.get_delivery(db=db, delivery_id=delivery_id, tenant_id=ctx.tenant_id)


@router.put("/{delivery_id}", response_model=DeliveryResponse)
def update_delivery(
    delivery_id: ResourceId,
    delivery_data: DeliveryUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    return delivery_service.update_delivery(
        db=db,
        delivery_id=delivery_id,
        delivery_data=delivery_data,
        tenant_id=ctx.tenant_id
    )


@router.delete("/{delivery_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_delivery(
    delivery_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    delivery_service.delete_delivery(db=db, delivery_id=delivery_id, tenant_id=ctx.tenant_id)
    return None
