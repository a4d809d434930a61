import secrets
from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session
from crm.database import get_db
from crm.core.config import settings
from crm.core.exceptions import Forbidden
from crm.core.roles import Role
from crm.schemas.tenant import TenantCreate, TenantCreateResponse
from crm.services import tenant_service

router = APIRouter()


def verify_admin_key(x_admin_key: str = Header(None, alias="x-admin-key")):
    """Verify the admin API key from the request header."""
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        raise Forbidden("Invalid admin API key")


@router.post("/tenants", response_model=TenantCreateResponse, status_code=status.HTTP_201_CREATED)
def create_tenant(
    request: TenantCreate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_admin_key)
):
    """
    Create a new tenant and its initial owner.

    Protected by x-admin-key header. The owner is identified by their
    identity provider subject; no credentials are stored here.
    """
    tenant, owner = tenant_service.create_tenant(db=db, tenant_data=request)

    return TenantCreateResponse(
        tenant_id=tenant.id,
        tenant_name=tenant.name,
        owner_user_id=owner.user_id,
        owner_role=Role.owner
    )
