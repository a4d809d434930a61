from typing import List, Optional
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select
from crm.crud.base import CRUDBase
from crm.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from crm.schemas.order import OrderCreate, OrderStatusUpdate


class CRUDOrder(CRUDBase[Order, OrderCreate, OrderStatusUpdate]):
    """CRUD operations for Order model. Items are always loaded with the order."""

    def get(self, db: Session, id: int, tenant_id: int, *, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).where(
            Order.id == id,
            Order.tenant_id == tenant_id
        ).options(selectinload(Order.items))
        if for_update:
            stmt = stmt.with_for_update()
        result = db.execute(stmt)
        return result.scalar_one_or_none()

    def get_filtered(
        self,
        db: Session,
        *,
        tenant_id: int,
        customer_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Order]:
        stmt = select(Order).where(
            Order.tenant_id == tenant_id
        ).options(selectinload(Order.items))
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.id.desc()).offset(skip).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())

    def create_with_items(
        self,
        db: Session,
        *,
        tenant_id: int,
        customer_id: Optional[int],
        payment_method: PaymentMethod,
        notes: Optional[str],
        items: List[dict]
    ) -> Order:
        """
        Add an order and its line items to the session without committing.

        Each item dict carries product_id, description, quantity and
        unit_price_cents. Line totals and the order total are computed here.

        Returns:
            Flushed Order instance with an ID assigned
        """
        db_order = Order(
            tenant_id=tenant_id,
            customer_id=customer_id,
            payment_method=payment_method,
            status=OrderStatus.pending,
            notes=notes,
            total_cents=0
        )

        total = 0
        for item in items:
            line_total = item["quantity"] * item["unit_price_cents"]
            total += line_total
            db_order.items.append(OrderItem(
                tenant_id=tenant_id,
                product_id=item.get("product_id"),
                description=item["description"],
                quantity=item["quantity"],
                unit_price_cents=item["unit_price_cents"],
                line_total_cents=line_total
            ))
        db_order.total_cents = total

        db.add(db_order)
        db.flush()
        return db_order


# Create a singleton instance
order = CRUDOrder(Order)
