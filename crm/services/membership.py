import secrets
from typing import List
from sqlalchemy.orm import Session
from crm.crud import invitation as invitation_crud
from crm.crud import membership as membership_crud
from crm.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from crm.core.identity import Identity
from crm.core.logging_config import logger
from crm.core.roles import Role, compare_roles, parse_role
from crm.models.membership import Invitation, Membership
from crm.schemas.membership import InvitationCreate


class MembershipService:
    """
    Service layer for tenant membership management.

    Rules enforced here, on top of the role gate:
    a caller never grants a role above their own, only owners touch owner
    memberships, and a tenant always keeps at least one owner.
    """

    def __init__(self):
        self.crud = membership_crud

    def get_members(self, db: Session, tenant_id: int) -> List[Membership]:
        return self.crud.get_multi_for_tenant(db=db, tenant_id=tenant_id)

    def _get_member(self, db: Session, user_id: str, tenant_id: int) -> Membership:
        membership = self.crud.get(db=db, user_id=user_id, tenant_id=tenant_id)
        if not membership:
            raise NotFound("Member not found")
        return membership

    @staticmethod
    def _check_grant(actor_role: Role, role: Role) -> None:
        if compare_roles(role, actor_role) < 0:
            raise Forbidden("Cannot grant a role above your own")

    @staticmethod
    def _check_can_touch(actor_role: Role, target: Membership) -> None:
        if parse_role(target.role) == Role.owner and actor_role != Role.owner:
            raise Forbidden("Only owners can modify owners")

    def _check_not_last_owner(self, db: Session, target: Membership) -> None:
        if parse_role(target.role) == Role.owner and len(self.crud.lock_owners(db=db, tenant_id=target.tenant_id)) <= 1:
            raise Conflict("A tenant must keep at least one owner")

    def update_role(
        self,
        db: Session,
        tenant_id: int,
        actor_role: Role,
        user_id: str,
        role: Role
    ) -> Membership:
        """
        Change a member's role.

        Raises:
            NotFound: If the user is not a member
            Forbidden: If the change exceeds the caller's own privilege
            Conflict: If the last owner would be demoted
        """
        target = self._get_member(db, user_id, tenant_id)
        self._check_can_touch(actor_role, target)
        self._check_grant(actor_role, role)
        if role != Role.owner:
            self._check_not_last_owner(db, target)

        updated = self.crud.update_role(db=db, db_obj=target, role=role)
        logger.info(f"Member role updated: user_id={user_id}, tenant_id={tenant_id}, role={role.value}")
        return updated

    def remove_member(self, db: Session, tenant_id: int, actor_role: Role, user_id: str) -> None:
        target = self._get_member(db, user_id, tenant_id)
        self._check_can_touch(actor_role, target)
        self._check_not_last_owner(db, target)

        self.crud.delete(db=db, db_obj=target)
        logger.info(f"Member removed: user_id={user_id}, tenant_id={tenant_id}")

    def get_pending_invitations(self, db: Session, tenant_id: int) -> List[Invitation]:
        return invitation_crud.get_pending_for_tenant(db=db, tenant_id=tenant_id)

    def invite(
        self,
        db: Session,
        tenant_id: int,
        actor: Identity,
        actor_role: Role,
        invitation_data: InvitationCreate
    ) -> Invitation:
        self._check_grant(actor_role, invitation_data.role)

        invitation = invitation_crud.create(
            db=db,
            tenant_id=tenant_id,
            email=invitation_data.email.lower(),
            role=invitation_data.role,
            token=secrets.token_urlsafe(32),
            invited_by=actor.user_id
        )
        logger.info(f"Invitation created: id={invitation.id}, tenant_id={tenant_id}, role={invitation.role}")
        return invitation

    def accept_invitation(self, db: Session, token: str, identity: Identity) -> Membership:
        """
        Turn an invitation into a membership for the calling user.

        The invitation is addressed by its token; when the caller's token
        carries an email it must match the invited address.

        Raises:
            NotFound: If the token is unknown
            Conflict: If the invitation was already used or the caller is
                already a member
            Forbidden: If the invitation was sent to a different email
        """
        invitation = invitation_crud.get_by_token(db=db, token=token, for_update=True)
        if not invitation:
            raise NotFound("Invitation not found")
        if invitation.accepted_at is not None:
            raise Conflict("Invitation has already been accepted")
        if identity.email and identity.email.lower() != invitation.email.lower():
            raise Forbidden("Invitation was sent to a different email")

        role = parse_role(invitation.role)
        if role is None:
            raise InvalidInput("Invitation role is not valid")

        membership = self.crud.create(
            db=db,
            user_id=identity.user_id,
            tenant_id=invitation.tenant_id,
            role=role,
            email=invitation.email,
            commit=False
        )
        invitation_crud.mark_accepted(db=db, db_obj=invitation, user_id=identity.user_id, commit=False)

        db.commit()
        db.refresh(membership)
        logger.info(f"Invitation accepted: id={invitation.id}, user_id={identity.user_id}")
        return membership


# Create singleton instance
membership_service = MembershipService()
