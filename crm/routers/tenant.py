from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from crm.database import get_db
from crm.dependencies import get_current_identity
from crm.core.identity import Identity
from crm.core.logging_config import logger
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.schemas.membership import InvitationCreate, InvitationResponse, MembershipResponse, RoleUpdate
from crm.schemas.tenant import TenantWithRole
from crm.services import membership_service, tenant_service

# Mounted at /api/tenants
router = APIRouter()

# Mounted at /api/invitations
invitations_router = APIRouter()


@router.get("", response_model=List[TenantWithRole])
def get_my_tenants(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    List the tenants the caller belongs to, with the caller's role in each.
    """
    return tenant_service.get_tenants_for_user(db=db, user_id=identity.user_id)


@router.get("/{tenant_id}/members", response_model=List[MembershipResponse])
def get_members(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    return membership_service.get_members(db=db, tenant_id=ctx.tenant_id)


@router.put("/{tenant_id}/members/{user_id}", response_model=MembershipResponse)
def update_member_role(
    user_id: str,
    role_data: RoleUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin))
):
    """
    Change a member's role.

    Callers cannot grant a role above their own, and only owners may change
    another owner. The last owner of a tenant cannot be demoted.
    """
    logger.info(f"Updating member role: user_id={user_id}, tenant_id={ctx.tenant_id}, by={ctx.user_id}")
    return membership_service.update_role(
        db=db,
        tenant_id=ctx.tenant_id,
        actor_role=ctx.role,
        user_id=user_id,
        role=role_data.role
    )


@router.delete("/{tenant_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    user_id: str,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin))
):
    logger.info(f"Removing member: user_id={user_id}, tenant_id={ctx.tenant_id}, by={ctx.user_id}")
    membership_service.remove_member(db=db, tenant_id=ctx.tenant_id, actor_role=ctx.role, user_id=user_id)
    return None


@router.get("/{tenant_id}/invitations", response_model=List[InvitationResponse])
def get_pending_invitations(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin))
):
    return membership_service.get_pending_invitations(db=db, tenant_id=ctx.tenant_id)


@router.post("/{tenant_id}/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    invitation_data: InvitationCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    ctx: TenantContext = Depends(require_role(Role.admin))
):
    """
    Invite someone by email with a role.

    The response carries the invitation token; delivering it is up to the
    caller.
    """
    return membership_service.invite(
        db=db,
        tenant_id=ctx.tenant_id,
        actor=identity,
        actor_role=ctx.role,
        invitation_data=invitation_data
    )


@invitations_router.post("/{token}/accept", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
def accept_invitation(
    token: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return membership_service.accept_invitation(db=db, token=token, identity=identity)
