from sqlalchemy import Column, Integer, String, Text, ForeignKey
from crm.database import Base, TimestampMixin

class Customer(Base, TimestampMixin):
    __tablename__ = "customer"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
