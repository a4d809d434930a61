from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from crm.crud.base import CRUDBase
from crm.models.credit import (
    CreditAccount,
    CreditTransaction,
    CreditTransactionStatus,
    CreditTransactionType,
)
from crm.schemas.credit import CreditAccountUpdate, CreditTransactionCreate, CreditTransactionStatusUpdate


class CRUDCreditAccount(CRUDBase[CreditAccount, CreditAccountUpdate, CreditAccountUpdate]):
    """CRUD operations for CreditAccount model."""

    def get_by_customer(
        self,
        db: Session,
        *,
        customer_id: int,
        tenant_id: int,
        for_update: bool = False
    ) -> Optional[CreditAccount]:
        """
        Get the credit account of a customer within a tenant.

        Args:
            db: Database session
            customer_id: Customer ID
            tenant_id: Tenant ID for isolation
            for_update: Lock the row until the transaction ends

        Returns:
            CreditAccount instance or None if the customer has no account
        """
        stmt = select(CreditAccount).where(
            CreditAccount.customer_id == customer_id,
            CreditAccount.tenant_id == tenant_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = db.execute(stmt)
        return result.scalar_one_or_none()


class CRUDCreditTransaction(CRUDBase[CreditTransaction, CreditTransactionCreate, CreditTransactionStatusUpdate]):
    """
    CRUD operations for CreditTransaction model.

    Ledger rows are never deleted; corrections are new rows.
    """

    def get_by_idempotency_key(
        self,
        db: Session,
        *,
        idempotency_key: str,
        tenant_id: int
    ) -> Optional[CreditTransaction]:
        stmt = select(CreditTransaction).where(
            CreditTransaction.idempotency_key == idempotency_key,
            CreditTransaction.tenant_id == tenant_id
        )
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_reversal(
        self,
        db: Session,
        *,
        transaction_id: int,
        tenant_id: int
    ) -> Optional[CreditTransaction]:
        stmt = select(CreditTransaction).where(
            CreditTransaction.reversal_of_id == transaction_id,
            CreditTransaction.tenant_id == tenant_id
        )
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_balance(self, db: Session, *, credit_id: int, tenant_id: int) -> int:
        """
        Sum of completed transaction amounts for an account.

        Pending, failed and reversed rows do not count.
        """
        stmt = select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
            CreditTransaction.credit_id == credit_id,
            CreditTransaction.tenant_id == tenant_id,
            CreditTransaction.status == CreditTransactionStatus.completed
        )
        return int(db.execute(stmt).scalar_one())

    def get_recent(
        self,
        db: Session,
        *,
        credit_id: int,
        tenant_id: int,
        limit: int = 10
    ) -> List[CreditTransaction]:
        return self.get_filtered(db=db, tenant_id=tenant_id, credit_id=credit_id, limit=limit)

    def get_filtered(
        self,
        db: Session,
        *,
        tenant_id: int,
        credit_id: Optional[int] = None,
        status: Optional[CreditTransactionStatus] = None,
        transaction_type: Optional[CreditTransactionType] = None,
        offset: int = 0,
        limit: int = 50
    ) -> List[CreditTransaction]:
        """
        List transactions within a tenant, newest first.
        """
        stmt = select(CreditTransaction).where(CreditTransaction.tenant_id == tenant_id)
        if credit_id is not None:
            stmt = stmt.where(CreditTransaction.credit_id == credit_id)
        if status is not None:
            stmt = stmt.where(CreditTransaction.status == status)
        if transaction_type is not None:
            stmt = stmt.where(CreditTransaction.transaction_type == transaction_type)
        stmt = stmt.order_by(
            CreditTransaction.created_at.desc(),
            CreditTransaction.id.desc()
        ).offset(offset).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())


# Create singleton instances
credit_account = CRUDCreditAccount(CreditAccount)
credit_transaction = CRUDCreditTransaction(CreditTransaction)
