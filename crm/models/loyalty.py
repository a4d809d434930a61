import enum
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, DateTime, ForeignKey, Enum, Index, text
)
from sqlalchemy.orm import relationship
from crm.database import Base, TimestampMixin

class LoyaltyTransactionType(str, enum.Enum):
    accrual = "accrual"
    redemption = "redemption"
    adjustment = "adjustment"


class LoyaltyProgram(Base, TimestampMixin):
    """Earning and redemption rules shared by the loyalty accounts enrolled in it."""
    __tablename__ = "loyalty_program"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    points_per_dollar = Column(Integer, nullable=False, default=1)
    minimum_redemption = Column(BigInteger, nullable=False, default=100)
    expiration_months = Column(Integer, nullable=True)  # None means points never expire
    created_by = Column(String, nullable=True)

    accounts = relationship("LoyaltyAccount", back_populates="program")


class LoyaltyAccount(Base, TimestampMixin):
    __tablename__ = "loyalty_account"
    __table_args__ = (
        Index(
            "uq_loyalty_account_tenant_customer_program",
            "tenant_id", "customer_id", "program_id",
            unique=True
        ),
        # NULLs never collide in the index above, so the program-less account needs its own
        Index(
            "uq_loyalty_account_tenant_customer_default",
            "tenant_id", "customer_id",
            unique=True,
            sqlite_where=text("program_id IS NULL"),
            postgresql_where=text("program_id IS NULL")
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False)
    program_id = Column(Integer, ForeignKey("loyalty_program.id"), nullable=True, index=True)

    program = relationship("LoyaltyProgram", back_populates="accounts")
    transactions = relationship("LoyaltyTransaction", back_populates="account")


class LoyaltyTransaction(Base, TimestampMixin):
    __tablename__ = "loyalty_transaction"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("loyalty_account.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(LoyaltyTransactionType, name="loyalty_transaction_type"), nullable=False)
    points = Column(BigInteger, nullable=False)  # positive for accrual, negative for redemption
    description = Column(Text, nullable=True)
    order_id = Column(Integer, ForeignKey("customer_order.id"), nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # credited points only

    account = relationship("LoyaltyAccount", back_populates="transactions")
