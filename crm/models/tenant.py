from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from crm.database import Base, TimestampMixin

class Tenant(Base, TimestampMixin):
    __tablename__ = "tenant"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    plan_type = Column(String, nullable=True)

    memberships = relationship("Membership", back_populates="tenant", cascade="all, delete-orphan")
