from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from crm.crud.base import CRUDBase
from crm.models.product import AdjustmentReason, InventoryAdjustment, Product
from crm.schemas.product import InventoryAdjustmentCreate, ProductCreate, ProductUpdate


class CRUDProduct(CRUDBase[Product, ProductCreate, ProductUpdate]):
    """CRUD operations for Product model."""

    def get_by_sku(
        self,
        db: Session,
        *,
        sku: str,
        tenant_id: int
    ) -> Optional[Product]:
        stmt = select(Product).where(
            Product.sku == sku,
            Product.tenant_id == tenant_id
        )
        result = db.execute(stmt)
        return result.scalar_one_or_none()


class CRUDInventoryAdjustment(CRUDBase[InventoryAdjustment, InventoryAdjustmentCreate, InventoryAdjustmentCreate]):
    """Adjustments are append-only; only create and the filtered listing are used."""

    def get_filtered(
        self,
        db: Session,
        *,
        tenant_id: int,
        product_id: Optional[int] = None,
        reason: Optional[AdjustmentReason] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[InventoryAdjustment]:
        stmt = select(InventoryAdjustment).where(InventoryAdjustment.tenant_id == tenant_id)
        if product_id is not None:
            stmt = stmt.where(InventoryAdjustment.product_id == product_id)
        if reason is not None:
            stmt = stmt.where(InventoryAdjustment.reason == reason)
        stmt = stmt.order_by(InventoryAdjustment.id.desc()).offset(skip).limit(limit)
        result = db.execute(stmt)
        return list(result.scalars().all())


# Create singleton instances
product = CRUDProduct(Product)
inventory_adjustment = CRUDInventoryAdjustment(InventoryAdjustment)
