import enum
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, ForeignKey, Enum, UniqueConstraint
)
from crm.database import Base, TimestampMixin

class AdjustmentType(str, enum.Enum):
    increase = "increase"
    decrease = "decrease"
    correction = "correction"

class AdjustmentReason(str, enum.Enum):
    waste = "waste"
    sample = "sample"
    personal = "personal"
    recount = "recount"
    damage = "damage"
    theft = "theft"
    expired = "expired"
    other = "other"


class Product(Base, TimestampMixin):
    __tablename__ = "product"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    price_cents = Column(BigInteger, nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=True)  # None means stock is not tracked
    is_active = Column(Boolean, nullable=False, default=True)


class InventoryAdjustment(Base, TimestampMixin):
    """Manual stock movement outside of orders, kept as an audit trail."""
    __tablename__ = "inventory_adjustment"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    adjustment_type = Column(Enum(AdjustmentType, name="inventory_adjustment_type"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(
        Enum(AdjustmentReason, name="inventory_adjustment_reason"),
        nullable=False,
        default=AdjustmentReason.other
    )
    notes = Column(Text, nullable=True)
    previous_quantity = Column(Integer, nullable=True)  # None when stock was not tracked before
    new_quantity = Column(Integer, nullable=False)
    created_by = Column(String, nullable=False)
