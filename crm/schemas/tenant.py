from pydantic import Field
from typing import Optional
from crm.core.roles import Role
from crm.schemas.common import APIModel

class TenantCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=255)
    plan_type: Optional[str] = None
    owner_user_id: str = Field(..., min_length=1, max_length=255)
    owner_email: Optional[str] = None

class TenantResponse(APIModel):
    id: int
    name: str
    plan_type: Optional[str] = None

class TenantWithRole(TenantResponse):
    role: Role

class TenantCreateResponse(APIModel):
    tenant_id: int
    tenant_name: str
    owner_user_id: str
    owner_role: Role
