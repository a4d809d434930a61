from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from crm.database import Base, TimestampMixin


class Membership(Base, TimestampMixin):
    """
    A user's role within one tenant.

    ``user_id`` is the identity provider's subject. ``role`` is kept as a plain
    string so that rows written by older role schemes survive; it is
    interpreted through crm.core.roles.
    """
    __tablename__ = "membership"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_membership_user_tenant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    role = Column(String(50), nullable=False)

    tenant = relationship("Tenant", back_populates="memberships")


class Invitation(Base, TimestampMixin):
    __tablename__ = "invitation"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String, nullable=False)
    role = Column(String(50), nullable=False)
    token = Column(String, unique=True, nullable=False, index=True)
    invited_by = Column(String, nullable=False)
    accepted_by = Column(String, nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
