import enum
from sqlalchemy import Column, Integer, BigInteger, Text, ForeignKey, Enum, JSON
from crm.database import Base, TimestampMixin

class DeliveryMethod(str, enum.Enum):
    pickup = "pickup"
    local = "local"
    mail = "mail"

class DeliveryStatus(str, enum.Enum):
    pending = "pending"
    in_transit = "in_transit"
    delivered = "delivered"
    cancelled = "cancelled"


class Delivery(Base, TimestampMixin):
    __tablename__ = "delivery"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("customer_order.id", ondelete="SET NULL"), nullable=True)
    method = Column(Enum(DeliveryMethod, name="delivery_method"), nullable=False)
    status = Column(Enum(DeliveryStatus, name="delivery_status"), nullable=False, default=DeliveryStatus.pending)
    cost_cents = Column(BigInteger, nullable=False, default=0)
    address = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
