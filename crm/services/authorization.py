from typing import Optional
from sqlalchemy.orm import Session
from crm.crud import membership as membership_crud
from crm.crud import tenant as tenant_crud
from crm.core.exceptions import Forbidden, Unauthenticated
from crm.core.logging_config import logger
from crm.core.roles import Role, has_minimum_role, parse_role


class AuthorizationService:
    """
    Tenant role gate.

    Decisions are read from the membership table on every call; nothing is
    cached and nothing is allowed by default.
    """

    def __init__(self):
        self.crud = membership_crud

    def resolve_role(self, db: Session, user_id: str, tenant_id: int) -> Optional[str]:
        """
        Return the stored role string of a user in a tenant.

        Returns:
            Role string as stored, or None if the user has no membership
        """
        membership = self.crud.get(db=db, user_id=user_id, tenant_id=tenant_id)
        return membership.role if membership else None

    def require_role(
        self,
        db: Session,
        user_id: Optional[str],
        tenant_id: int,
        min_role: Role
    ) -> Role:
        """
        Ensure a user holds at least ``min_role`` in a tenant.

        Args:
            db: Database session
            user_id: Identity provider subject, None when the caller is anonymous
            tenant_id: Tenant being accessed
            min_role: Least privileged role that may proceed

        Returns:
            The caller's role

        Raises:
            Unauthenticated: If there is no user identity
            Forbidden: If the tenant does not exist, or the caller's role is
                missing, unrecognised, or ranked below min_role
        """
        if not user_id:
            raise Unauthenticated()

        # Unknown tenants are reported like missing membership
        if tenant_crud.get(db=db, tenant_id=tenant_id) is None:
            logger.info(f"Access denied: tenant_id={tenant_id} does not exist, user_id={user_id}")
            raise Forbidden("You do not have access to this tenant")

        stored = self.resolve_role(db=db, user_id=user_id, tenant_id=tenant_id)
        if stored is None:
            logger.info(f"Access denied: user_id={user_id} is not a member of tenant_id={tenant_id}")
            raise Forbidden("You do not have access to this tenant")

        if not has_minimum_role(stored, min_role):
            logger.info(
                f"Access denied: user_id={user_id} role={stored} below {min_role.value} in tenant_id={tenant_id}"
            )
            raise Forbidden(f"Requires {min_role.value} role or higher")

        return parse_role(stored)


# Create singleton instance
authorization_service = AuthorizationService()
