from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from crm.crud.base import CRUDBase
from crm.models.loyalty import LoyaltyAccount, LoyaltyProgram, LoyaltyTransaction, LoyaltyTransactionType
from crm.schemas.loyalty import LoyaltyProgramCreate, LoyaltyProgramUpdate


class CRUDLoyaltyProgram(CRUDBase[LoyaltyProgram, LoyaltyProgramCreate, LoyaltyProgramUpdate]):
    """CRUD operations for LoyaltyProgram model."""

    def get_filtered(
        self,
        db: Session,
        *,
        tenant_id: int,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[LoyaltyProgram]:
        stmt = select(LoyaltyProgram).where(LoyaltyProgram.tenant_id == tenant_id)
        if is_active is not None:
            stmt = stmt.where(LoyaltyProgram.is_active == is_active)
        stmt = stmt.order_by(LoyaltyProgram.id.desc()).offset(skip).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def count_accounts(self, db: Session, *, program_id: int, tenant_id: int) -> int:
        stmt = select(func.count(LoyaltyAccount.id)).where(
            LoyaltyAccount.program_id == program_id,
            LoyaltyAccount.tenant_id == tenant_id
        )
        return int(db.execute(stmt).scalar_one())


class CRUDLoyalty:
    """
    CRUD operations for loyalty accounts and their transactions.

    Balances are never stored; they are derived from transactions.
    """

    def get_account(
        self,
        db: Session,
        *,
        customer_id: int,
        tenant_id: int,
        program_id: Optional[int] = None,
        for_update: bool = False
    ) -> Optional[LoyaltyAccount]:
        """Account of a customer in a program, or the program-less account when program_id is None."""
        program_filter = (
            LoyaltyAccount.program_id.is_(None) if program_id is None
            else LoyaltyAccount.program_id == program_id
        )
        stmt = select(LoyaltyAccount).where(
            LoyaltyAccount.customer_id == customer_id,
            LoyaltyAccount.tenant_id == tenant_id,
            program_filter
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_accounts(self, db: Session, *, tenant_id: int) -> List[LoyaltyAccount]:
        stmt = select(LoyaltyAccount).where(
            LoyaltyAccount.tenant_id == tenant_id
        ).order_by(LoyaltyAccount.customer_id, LoyaltyAccount.id)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def create_account(
        self,
        db: Session,
        *,
        customer_id: int,
        tenant_id: int,
        program_id: Optional[int] = None
    ) -> LoyaltyAccount:
        db_obj = LoyaltyAccount(customer_id=customer_id, tenant_id=tenant_id, program_id=program_id)
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_transactions(self, db: Session, *, account_id: int, tenant_id: int) -> List[LoyaltyTransaction]:
        """Every transaction of an account, oldest first."""
        stmt = select(LoyaltyTransaction).where(
            LoyaltyTransaction.account_id == account_id,
            LoyaltyTransaction.tenant_id == tenant_id
        ).order_by(LoyaltyTransaction.id)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def get_tenant_transactions(self, db: Session, *, tenant_id: int) -> List[LoyaltyTransaction]:
        stmt = select(LoyaltyTransaction).where(
            LoyaltyTransaction.tenant_id == tenant_id
        ).order_by(LoyaltyTransaction.id)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def get_recent_transactions(
        self,
        db: Session,
        *,
        account_id: int,
        tenant_id: int,
        limit: int = 10
    ) -> List[LoyaltyTransaction]:
        stmt = select(LoyaltyTransaction).where(
            LoyaltyTransaction.account_id == account_id,
            LoyaltyTransaction.tenant_id == tenant_id
        ).order_by(
            LoyaltyTransaction.created_at.desc(),
            LoyaltyTransaction.id.desc()
        ).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def get_order_accrual(self, db: Session, *, account_id: int, order_id: int) -> Optional[LoyaltyTransaction]:
        stmt = select(LoyaltyTransaction).where(
            LoyaltyTransaction.account_id == account_id,
            LoyaltyTransaction.order_id == order_id,
            LoyaltyTransaction.type == LoyaltyTransactionType.accrual
        ).limit(1)
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def add_transaction(
        self,
        db: Session,
        *,
        account: LoyaltyAccount,
        type: LoyaltyTransactionType,
        points: int,
        description: Optional[str] = None,
        order_id: Optional[int] = None,
        expires_at: Optional[datetime] = None
    ) -> LoyaltyTransaction:
        db_obj = LoyaltyTransaction(
            tenant_id=account.tenant_id,
            account_id=account.id,
            type=type,
            points=points,
            description=description,
            order_id=order_id,
            expires_at=expires_at
        )
        db.add(db_obj)
        db.flush()
        return db_obj


# Create singleton instances
loyalty = CRUDLoyalty()
loyalty_program = CRUDLoyaltyProgram(LoyaltyProgram)
