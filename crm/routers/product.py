from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List
from crm.database import get_db
from crm.schemas.product import ProductCreate, ProductUpdate, ProductResponse
from crm.services import product_service
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.dependencies import ResourceId
from crm.schemas.common import MAX_ID

router = APIRouter()


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    logger.info(f"Creating product: name={product_data.name}, tenant_id={ctx.tenant_id}")
    return product_service.create_product(db=db, product_data=product_data, tenant_id=ctx.tenant_id)


@router.get("", response_model=List[ProductResponse])
def get_products(
    skip: int = Query(0, ge=0, le=MAX_ID),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return product_service.get_products(db=db, tenant_id=ctx.tenant_id, skip=skip, limit=limit)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return product_service.get_product(db=db, product_id=product_id, tenant_id=ctx.tenant_id)


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: ResourceId,
    product_data: ProductUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    return product_service.update_product(
        db=db,
        product_id=product_id,
        product_data=product_data,
        tenant_id=ctx.tenant_id
    )


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    product_service.delete_product(db=db, product_id=product_id, tenant_id=ctx.tenant_id)
    return None
