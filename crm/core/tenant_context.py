from dataclasses import dataclass
from fastapi import Depends
from sqlalchemy.orm import Session
from crm.database import get_db
from crm.dependencies import ResourceId, get_current_identity
from crm.core.identity import Identity
from crm.core.roles import Role
from crm.services.authorization import authorization_service


@dataclass(frozen=True)
class TenantContext:
    """Caller acting inside one tenant, after the role gate has passed."""
    tenant_id: int
    user_id: str
    role: Role


def require_role(min_role: Role):
    """
    Build a FastAPI dependency that admits the caller to the tenant named by
    the ``tenant_id`` path parameter only if they hold at least ``min_role``.

    The tenant_id is then passed explicitly through service and CRUD layers.
    """

    def dependency(
        tenant_id: ResourceId,
        identity: Identity = Depends(get_current_identity),
        db: Session = Depends(get_db)
    ) -> TenantContext:
        role = authorization_service.require_role(
            db=db,
            user_id=identity.user_id,
            tenant_id=tenant_id,
            min_role=min_role
        )
        return TenantContext(tenant_id=tenant_id, user_id=identity.user_id, role=role)

    return dependency
