from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from crm.crud.base import CRUDBase
from crm.models.delivery import Delivery, DeliveryStatus
from crm.schemas.delivery import DeliveryCreate, DeliveryUpdate


class CRUDDelivery(CRUDBase[Delivery, DeliveryCreate, DeliveryUpdate]):
    """CRUD operations for Delivery model."""

    def get_filtered(
        self,
        db: Session,
        *,
        tenant_id: int,
        status: Optional[DeliveryStatus] = None,
        order_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Delivery]:
        """
        Get deliveries within a tenant, optionally filtered by status or order.
        """
        stmt = select(Delivery).where(Delivery.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Delivery.status == status)
        if order_id is not None:
            stmt = stmt.where(Delivery.order_id == order_id)
        stmt = stmt.order_by(Delivery.id.desc()).offset(skip).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())


# Create a singleton instance
delivery = CRUDDelivery(Delivery)
