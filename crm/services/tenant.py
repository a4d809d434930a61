from typing import List, Tuple
from sqlalchemy.orm import Session
from crm.crud import membership as membership_crud
from crm.crud import tenant as tenant_crud
from crm.core.logging_config import logger
from crm.core.roles import parse_role, role_rank
from crm.models.membership import Membership
from crm.models.tenant import Tenant
from crm.schemas.tenant import TenantCreate, TenantWithRole


class TenantService:
    """Tenant provisioning and the caller's tenant directory."""

    def __init__(self):
        self.crud = tenant_crud

    def create_tenant(self, db: Session, tenant_data: TenantCreate) -> Tuple[Tenant, Membership]:
        """
        Create a tenant together with its first owner.

        Both rows are committed in one transaction.
        """
        tenant, owner = self.crud.create_with_owner(
            db=db,
            name=tenant_data.name,
            owner_user_id=tenant_data.owner_user_id,
            owner_email=tenant_data.owner_email,
            plan_type=tenant_data.plan_type
        )
        logger.info(f"Tenant created: id={tenant.id}, owner={owner.user_id}")
        return tenant, owner

    def get_tenants_for_user(self, db: Session, user_id: str) -> List[TenantWithRole]:
        """
        List the tenants a user belongs to, most privileged role first.

        Memberships with an unrecognised role are left out.
        """
        memberships = membership_crud.get_multi_for_user(db=db, user_id=user_id)
        tenants = []
        for m in sorted(memberships, key=lambda m: (role_rank(m.role), m.tenant_id)):
            role = parse_role(m.role)
            if role is None:
                continue
            tenants.append(TenantWithRole(
                id=m.tenant.id,
                name=m.tenant.name,
                plan_type=m.tenant.plan_type,
                role=role
            ))
        return tenants


# Create singleton instance
tenant_service = TenantService()
