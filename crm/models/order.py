import enum
from sqlalchemy import Column, Integer, BigInteger, String, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from crm.database import Base, TimestampMixin

class OrderStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    fulfilled = "fulfilled"
    cancelled = "cancelled"

class PaymentMethod(str, enum.Enum):
    cash = "cash"
    card = "card"
    credit = "credit"


class Order(Base, TimestampMixin):
    __tablename__ = "customer_order"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=True, index=True)
    status = Column(Enum(OrderStatus, name="order_status"), nullable=False, default=OrderStatus.pending)
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False, default=PaymentMethod.cash)
    total_cents = Column(BigInteger, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base, TimestampMixin):
    __tablename__ = "order_item"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False)
    order_id = Column(Integer, ForeignKey("customer_order.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("product.id"), nullable=True)
    description = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(BigInteger, nullable=False)
    line_total_cents = Column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="items")
