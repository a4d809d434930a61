from pydantic import EmailStr
from typing import Optional
from datetime import datetime
from crm.core.roles import Role
from crm.schemas.common import APIModel

class MembershipResponse(APIModel):
    user_id: str
    tenant_id: int
    email: Optional[str] = None
    role: str
    created_at: datetime

class RoleUpdate(APIModel):
    role: Role

class InvitationCreate(APIModel):
    email: EmailStr
    role: Role = Role.member

class InvitationResponse(APIModel):
    id: int
    tenant_id: int
    email: str
    role: str
    token: str
    invited_by: str
    created_at: datetime
    accepted_at: Optional[datetime] = None
