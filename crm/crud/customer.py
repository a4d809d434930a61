from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from crm.crud.base import CRUDBase
from crm.models.customer import Customer
from crm.schemas.customer import CustomerCreate, CustomerUpdate


class CRUDCustomer(CRUDBase[Customer, CustomerCreate, CustomerUpdate]):
    """CRUD operations for Customer model."""

    def get_by_email(
        self,
        db: Session,
        *,
        email: str,
        tenant_id: int
    ) -> Optional[Customer]:
        """
        Get a customer by email within a tenant (case-insensitive).
        """
        stmt = select(Customer).where(
            func.lower(Customer.email) == email.lower(),
            Customer.tenant_id == tenant_id
        )
        result = db.execute(stmt)
        return result.scalars().first()


# Create a singleton instance
customer = CRUDCustomer(Customer)
