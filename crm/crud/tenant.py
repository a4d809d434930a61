from typing import Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import select
from crm.core.roles import Role
from crm.models.membership import Membership
from crm.models.tenant import Tenant
from crm.crud.membership import membership as membership_crud


class CRUDTenant:
    """
    CRUD operations for Tenant model.

    Note: Tenant model doesn't have tenant_id (it IS the tenant),
    so we don't inherit from CRUDBase.
    """

    def __init__(self):
        self.model = Tenant

    def get(self, db: Session, tenant_id: int) -> Optional[Tenant]:
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def create_with_owner(
        self,
        db: Session,
        *,
        name: str,
        owner_user_id: str,
        owner_email: Optional[str] = None,
        plan_type: Optional[str] = None
    ) -> Tuple[Tenant, Membership]:
        """
        Create a tenant and its owner membership atomically.

        Args:
            db: Database session
            name: Tenant name
            owner_user_id: Identity provider subject of the owner
            owner_email: Owner email, kept for display
            plan_type: Optional billing plan label

        Returns:
            Tuple of (created Tenant, owner Membership)
        """
        tenant = Tenant(name=name, plan_type=plan_type)
        db.add(tenant)
        db.flush()  # Get tenant.id without committing

        owner = membership_crud.create(
            db=db,
            user_id=owner_user_id,
            tenant_id=tenant.id,
            role=Role.owner,
            email=owner_email,
            commit=False  # Don't commit yet - we'll commit both together
        )

        # Commit both tenant and membership atomically
        db.commit()
        db.refresh(tenant)
        db.refresh(owner)

        return tenant, owner


# Create singleton instance
tenant = CRUDTenant()
