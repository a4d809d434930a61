from typing import List, Optional
from sqlalchemy.orm import Session
from crm.crud import delivery as delivery_crud
from crm.crud import order as order_crud
from crm.core.exceptions import InvalidInput, NotFound
from crm.models.delivery import Delivery, DeliveryStatus
from crm.schemas.delivery import DeliveryCreate, DeliveryUpdate

# Terminal states cannot move anywhere else
_FINAL_STATUSES = {DeliveryStatus.delivered, DeliveryStatus.cancelled}


class DeliveryService:
    """Service layer for delivery tracking."""

    def __init__(self):
        self.crud = delivery_crud

    def get_delivery(self, db: Session, delivery_id: int, tenant_id: int) -> Delivery:
        delivery = self.crud.get(db=db, id=delivery_id, tenant_id=tenant_id)
        if not delivery:
            raise NotFound("Delivery not found")
        return delivery

    def get_deliveries(
        self,
        db: Session,
        tenant_id: int,
        status: Optional[DeliveryStatus] = None,
        order_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Delivery]:
        return self.crud.get_filtered(
            db=db, tenant_id=tenant_id, status=status, order_id=order_id, skip=skip, limit=limit
        )

    def create_delivery(self, db: Session, delivery_data: DeliveryCreate, tenant_id: int) -> Delivery:
        """
        Create a delivery, optionally linked to an order of the same tenant.

        Raises:
            NotFound: If the linked order does not exist in this tenant
        """
        if delivery_data.order_id is not None:
            if not order_crud.get(db=db, id=delivery_data.order_id, tenant_id=tenant_id):
                raise NotFound("Order not found")
        return self.crud.create(db=db, obj_in=delivery_data, tenant_id=tenant_id)

    def update_delivery(
        self,
        db: Session,
        delivery_id: int,
        delivery_data: DeliveryUpdate,
        tenant_id: int
    ) -> Delivery:
        delivery = self.get_delivery(db, delivery_id, tenant_id)
        if delivery_data.status is not None and delivery.status in _FINAL_STATUSES \
                and delivery_data.status != delivery.status:
            raise InvalidInput(f"Delivery is already {delivery.status.value}")
        return self.crud.update(db=db, db_obj=delivery, obj_in=delivery_data)

    def delete_delivery(self, db: Session, delivery_id: int, tenant_id: int) -> Delivery:
        delivery = self.crud.delete(db=db, id=delivery_id, tenant_id=tenant_id)
        if not delivery:
            raise NotFound("Delivery not found")
        return delivery


# Create singleton instance
delivery_service = DeliveryService()
