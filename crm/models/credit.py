import enum
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, ForeignKey, DateTime, Enum, UniqueConstraint
)
from sqlalchemy.orm import relationship
from crm.database import Base, TimestampMixin

class CreditAccountStatus(str, enum.Enum):
    active = "active"
    suspended = "suspended"
    closed = "closed"
    defaulted = "defaulted"

class CreditTransactionType(str, enum.Enum):
    charge = "charge"
    payment = "payment"
    fee = "fee"
    adjustment = "adjustment"

class CreditTransactionStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    reversed = "reversed"


class CreditAccount(Base, TimestampMixin):
    """
    Revolving credit facility for one customer of a tenant.

    The balance is not stored; it is the sum of the account's completed
    transactions.
    """
    __tablename__ = "credit_account"
    __table_args__ = (
        UniqueConstraint("tenant_id", "customer_id", name="uq_credit_account_tenant_customer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False)
    credit_limit = Column(BigInteger, nullable=False, default=0)
    status = Column(
        Enum(CreditAccountStatus, name="credit_account_status"),
        nullable=False,
        default=CreditAccountStatus.active
    )
    payment_customer_ref = Column(String, nullable=True)
    payment_method_ref = Column(String, nullable=True)
    setup_intent_id = Column(String, nullable=True)

    transactions = relationship("CreditTransaction", back_populates="credit_account")


class CreditTransaction(Base, TimestampMixin):
    """Ledger entry. Amounts are signed minor units; positive increases what is owed."""
    __tablename__ = "credit_transaction"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_credit_transaction_tenant_key"),
        UniqueConstraint("reversal_of_id", name="uq_credit_transaction_reversal_of"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    credit_id = Column(Integer, ForeignKey("credit_account.id"), nullable=False, index=True)
    transaction_type = Column(Enum(CreditTransactionType, name="credit_transaction_type"), nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(
        Enum(CreditTransactionStatus, name="credit_transaction_status"),
        nullable=False,
        default=CreditTransactionStatus.completed
    )
    idempotency_key = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order_id = Column(Integer, ForeignKey("customer_order.id"), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    reversal_of_id = Column(Integer, ForeignKey("credit_transaction.id"), nullable=True)

    credit_account = relationship("CreditAccount", back_populates="transactions")
