from typing import List
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from crm.crud import customer as customer_crud
from crm.core.exceptions import Conflict, NotFound
from crm.models.customer import Customer
from crm.schemas.customer import CustomerCreate, CustomerUpdate


class CustomerService:
    """
    Service layer for customer business logic.

    Customer email addresses are unique within a tenant, ignoring case.
    """

    def __init__(self):
        self.crud = customer_crud

    def get_customer(self, db: Session, customer_id: int, tenant_id: int) -> Customer:
        """
        Get a customer by ID with tenant isolation.

        Raises:
            NotFound: If customer not found
        """
        customer = self.crud.get(db=db, id=customer_id, tenant_id=tenant_id)
        if not customer:
            raise NotFound("Customer not found")
        return customer

    def get_customers(self, db: Session, tenant_id: int, skip: int = 0, limit: int = 100) -> List[Customer]:
        return self.crud.get_multi(db=db, skip=skip, limit=limit, tenant_id=tenant_id)

    def _check_email_free(self, db: Session, email: str, tenant_id: int, exclude_id: int = None) -> None:
        existing = self.crud.get_by_email(db=db, email=email, tenant_id=tenant_id)
        if existing and existing.id != exclude_id:
            raise Conflict("Customer with this email already exists")

    def create_customer(self, db: Session, customer_data: CustomerCreate, tenant_id: int) -> Customer:
        if customer_data.email:
            self._check_email_free(db, customer_data.email, tenant_id)
        return self.crud.create(db=db, obj_in=customer_data, tenant_id=tenant_id)

    def update_customer(
        self,
        db: Session,
        customer_id: int,
        customer_data: CustomerUpdate,
        tenant_id: int
    ) -> Customer:
        customer = self.get_customer(db, customer_id, tenant_id)
        if customer_data.email:
            self._check_email_free(db, customer_data.email, tenant_id, exclude_id=customer.id)
        return self.crud.update(db=db, db_obj=customer, obj_in=customer_data)

    def delete_customer(self, db: Session, customer_id: int, tenant_id: int) -> Customer:
        try:
            customer = self.crud.delete(db=db, id=customer_id, tenant_id=tenant_id)
        except IntegrityError:
            db.rollback()
            raise Conflict("Customer has orders or accounts and cannot be deleted")
        if not customer:
            raise NotFound("Customer not found")
        return customer


# Create singleton instance
customer_service = CustomerService()
