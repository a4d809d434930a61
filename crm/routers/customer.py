from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List
from crm.database import get_db
from crm.schemas.customer import CustomerCreate, CustomerUpdate, CustomerResponse
from crm.services import customer_service
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.dependencies import ResourceId
from crm.schemas.common import MAX_ID

router = APIRouter()


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(
    customer_data: CustomerCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    """
    Create a new customer.

    Raises:
        Conflict 409: If a customer with this email already exists in the tenant
    """
    logger.info(f"Creating customer: name={customer_data.name}, tenant_id={ctx.tenant_id}")
    result = customer_service.create_customer(db=db, customer_data=customer_data, tenant_id=ctx.tenant_id)
    logger.info(f"Customer created successfully: id={result.id}")
    return result


@router.get("", response_model=List[CustomerResponse])
def get_customers(
    skip: int = Query(0, ge=0, le=MAX_ID),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return customer_service.get_customers(db=db, tenant_id=ctx.tenant_id, skip=skip, limit=limit)


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(
    customer_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return customer_service.get_customer(db=db, customer_id=customer_id, tenant_id=ctx.tenant_id)


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: ResourceId,
    customer_data: CustomerUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    return customer_service.update_customer(
        db=db,
        customer_id=customer_id,
        customer_data=customer_data,
        tenant_id=ctx.tenant_id
    )


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_customer(
    customer_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager))
):
    """
    Delete a customer.

    Customers with orders, credit or loyalty accounts cannot be deleted.
    """
    customer_service.delete_customer(db=db, customer_id=customer_id, tenant_id=ctx.tenant_id)
    return None
