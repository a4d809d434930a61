from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from crm.core.exceptions import Conflict
from crm.core.roles import Role
from crm.models.membership import Invitation, Membership


class CRUDMembership:
    """
    CRUD operations for Membership model.

    Memberships are keyed by (user_id, tenant_id) rather than by row id, so
    this does not inherit from CRUDBase.
    """

    def __init__(self):
        self.model = Membership

    def get(self, db: Session, *, user_id: str, tenant_id: int) -> Optional[Membership]:
        """
        Retrieve the unique membership of a user in a tenant.

        Returns:
            Membership instance or None if the user has no role in the tenant
        """
        stmt = select(Membership).where(
            Membership.user_id == user_id,
            Membership.tenant_id == tenant_id
        )
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_multi_for_tenant(self, db: Session, *, tenant_id: int) -> List[Membership]:
        stmt = select(Membership).where(
            Membership.tenant_id == tenant_id
        ).order_by(Membership.id)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def get_multi_for_user(self, db: Session, *, user_id: str) -> List[Membership]:
        stmt = select(Membership).where(
            Membership.user_id == user_id
        ).order_by(Membership.tenant_id)
        result = db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def owners_for_update(tenant_id: int):
        return select(Membership).where(
            Membership.tenant_id == tenant_id,
            Membership.role == Role.owner.value
        ).with_for_update().execution_options(populate_existing=True)

    def lock_owners(self, db: Session, *, tenant_id: int) -> List[Membership]:
        """
        Lock and return the owner memberships of a tenant.

        PostgreSQL rejects FOR UPDATE on an aggregate, so callers count the
        returned rows.
        """
        result = db.execute(self.owners_for_update(tenant_id))
        return list(result.scalars().all())

    def create(
        self,
        db: Session,
        *,
        user_id: str,
        tenant_id: int,
        role: Role,
        email: Optional[str] = None,
        commit: bool = True
    ) -> Membership:
        """
        Create a membership.

        Raises:
            Conflict: If the user already belongs to the tenant
        """
        db_obj = Membership(
            user_id=user_id,
            tenant_id=tenant_id,
            role=role.value,
            email=email
        )
        db.add(db_obj)

        try:
            if commit:
                db.commit()
                db.refresh(db_obj)
            else:
                db.flush()
        except IntegrityError:
            db.rollback()
            raise Conflict("User is already a member of this tenant")

        return db_obj

    def update_role(self, db: Session, *, db_obj: Membership, role: Role) -> Membership:
        db_obj.role = role.value
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def delete(self, db: Session, *, db_obj: Membership) -> None:
        db.delete(db_obj)
        db.commit()


class CRUDInvitation:
    """CRUD operations for Invitation model."""

    def __init__(self):
        self.model = Invitation

    def get_by_token(self, db: Session, *, token: str, for_update: bool = False) -> Optional[Invitation]:
        stmt = select(Invitation).where(Invitation.token == token)
        if for_update:
            stmt = stmt.with_for_update()
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_pending_for_tenant(self, db: Session, *, tenant_id: int) -> List[Invitation]:
        stmt = select(Invitation).where(
            Invitation.tenant_id == tenant_id,
            Invitation.accepted_at.is_(None)
        ).order_by(Invitation.id)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def create(
        self,
        db: Session,
        *,
        tenant_id: int,
        email: str,
        role: Role,
        token: str,
        invited_by: str
    ) -> Invitation:
        db_obj = Invitation(
            tenant_id=tenant_id,
            email=email,
            role=role.value,
            token=token,
            invited_by=invited_by
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def mark_accepted(self, db: Session, *, db_obj: Invitation, user_id: str, commit: bool = True) -> Invitation:
        db_obj.accepted_by = user_id
        db_obj.accepted_at = datetime.now(timezone.utc)
        db.add(db_obj)
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj


# Create singleton instances
membership = CRUDMembership()
invitation = CRUDInvitation()
