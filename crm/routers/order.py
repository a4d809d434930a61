from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
from crm.database import get_db
from crm.models.order import OrderStatus
from crm.schemas.order import OrderCreate, OrderResponse, OrderStatusUpdate
from crm.services import order_service
from crm.core.feature_flags import FlagProvider, get_flag_provider
from crm.core.idempotency import IdempotencyGuard, get_idempotency_guard
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.dependencies import ResourceId
from crm.schemas.common import MAX_ID

router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    order_data: OrderCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    flags: FlagProvider = Depends(get_flag_provider),
    guard: IdempotencyGuard = Depends(get_idempotency_guard)
):
    """
    Create an order with its line items.

    Send an Idempotency-Key header to make retries safe: a repeated request
    with the same key returns the first response instead of creating a
    second order.

    Raises:
        NotFound 404: If the customer or a product is not in the tenant
        Validation 400: If stock or credit rules reject the order
        Conflict 409: If a request with the same key is still in progress
    """
    replay = guard.begin(scope=f"orders:{ctx.tenant_id}:{ctx.user_id}")
    if replay is not None:
        return JSONResponse(
            status_code=replay.status_code,
            content=replay.body,
            headers={"Idempotent-Replayed": "true"}
        )

    try:
        logger.info(f"Creating order: items={len(order_data.items)}, tenant_id={ctx.tenant_id}")
        result = order_service.create_order(db=db, order_data=order_data, tenant_id=ctx.tenant_id, flags=flags)
    except Exception as e:
        logger.error(f"Error creating order: {type(e).__name__}: {str(e)}")
        guard.release()
        raise

    body = OrderResponse.model_validate(result).model_dump(mode="json", by_alias=True)
    guard.complete(status.HTTP_201_CREATED, body)
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=body)


@router.get("", response_model=List[OrderResponse])
def get_orders(
    customer_id: Optional[int] = Query(None, alias="customerId", ge=1, le=MAX_ID),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0, le=MAX_ID),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return order_service.get_orders(
        db=db,
        tenant_id=ctx.tenant_id,
        customer_id=customer_id,
        status=order_status,
        skip=skip,
        limit=limit
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return order_service.get_order(db=db, order_id=order_id, tenant_id=ctx.tenant_id)


@router.patch("/{order_id}", response_model=OrderResponse)
def update_order_status(
    order_id: ResourceId,
    status_data: OrderStatusUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    """
    Move an order to a new status.

    Cancelling returns tracked stock and reverses any credit charge.
    """
    return order_service.update_status(
        db=db,
        order_id=order_id,
        new_status=status_data.status,
        tenant_id=ctx.tenant_id
    )
