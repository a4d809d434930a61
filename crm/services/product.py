from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from crm.crud import inventory_adjustment as adjustment_crud
from crm.crud import product as product_crud
from crm.core.exceptions import Conflict, InvalidInput, NotFound
from crm.core.logging_config import logger
from crm.models.product import AdjustmentReason, AdjustmentType, InventoryAdjustment, Product
from crm.schemas.common import MAX_STOCK
from crm.schemas.product import InventoryAdjustmentCreate, ProductCreate, ProductUpdate


class ProductService:
    """Service layer for the product catalogue and manual stock adjustments."""

    def __init__(self):
        self.crud = product_crud
        self.adjustments = adjustment_crud

    def get_product(self, db: Session, product_id: int, tenant_id: int) -> Product:
        product = self.crud.get(db=db, id=product_id, tenant_id=tenant_id)
        if not product:
            raise NotFound("Product not found")
        return product

    def get_products(self, db: Session, tenant_id: int, skip: int = 0, limit: int = 100) -> List[Product]:
        return self.crud.get_multi(db=db, skip=skip, limit=limit, tenant_id=tenant_id)

    def create_product(self, db: Session, product_data: ProductCreate, tenant_id: int) -> Product:
        """
        Create a product.

        Raises:
            Conflict: If the SKU is already used in this tenant
        """
        if product_data.sku and self.crud.get_by_sku(db=db, sku=product_data.sku, tenant_id=tenant_id):
            raise Conflict("Product with this SKU already exists")
        return self.crud.create(db=db, obj_in=product_data, tenant_id=tenant_id)

    def update_product(
        self,
        db: Session,
        product_id: int,
        product_data: ProductUpdate,
        tenant_id: int
    ) -> Product:
        product = self.get_product(db, product_id, tenant_id)
        if product_data.sku and product_data.sku != product.sku:
            if self.crud.get_by_sku(db=db, sku=product_data.sku, tenant_id=tenant_id):
                raise Conflict("Product with this SKU already exists")
        return self.crud.update(db=db, db_obj=product, obj_in=product_data)

    def delete_product(self, db: Session, product_id: int, tenant_id: int) -> Product:
        try:
            product = self.crud.delete(db=db, id=product_id, tenant_id=tenant_id)
        except IntegrityError:
            db.rollback()
            raise Conflict("Product is referenced by orders; deactivate it instead")
        if not product:
            raise NotFound("Product not found")
        return product

    # Inventory adjustments

    def get_adjustments(
        self,
        db: Session,
        tenant_id: int,
        product_id: Optional[int] = None,
        reason: Optional[AdjustmentReason] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[InventoryAdjustment]:
        return self.adjustments.get_filtered(
            db=db, tenant_id=tenant_id, product_id=product_id, reason=reason, skip=skip, limit=limit
        )

    @staticmethod
    def _next_quantity(previous: Optional[int], adjustment: InventoryAdjustmentCreate) -> int:
        if adjustment.adjustment_type == AdjustmentType.correction:
            return adjustment.quantity

        if adjustment.quantity == 0:
            raise InvalidInput(f"Quantity for a {adjustment.adjustment_type.value} must be positive")
        if previous is None:
            raise InvalidInput("Stock is not tracked for this product; record a correction first")

        if adjustment.adjustment_type == AdjustmentType.increase:
            if previous + adjustment.quantity > MAX_STOCK:
                raise InvalidInput("Stock quantity would exceed the maximum")
            return previous + adjustment.quantity
        # Stock never goes negative
        return max(0, previous - adjustment.quantity)

    def adjust_stock(
        self,
        db: Session,
        tenant_id: int,
        user_id: str,
        adjustment: InventoryAdjustmentCreate
    ) -> InventoryAdjustment:
        """
        Change a product's stock outside of an order and record why.

        Increases and decreases move tracked stock by ``quantity``; a decrease
        stops at zero. A correction sets the stock to ``quantity`` and also
        starts tracking stock for a product that had none. The recorded
        quantity is the size of the change actually applied.

        Raises:
            NotFound: If the product is not in the tenant
            InvalidInput: If the movement is empty, stock is not tracked, or
                the result would be out of range
        """
        product = self.crud.get(db=db, id=adjustment.product_id, tenant_id=tenant_id, for_update=True)
        if not product:
            raise NotFound("Product not found")

        previous = product.stock_quantity
        new = self._next_quantity(previous, adjustment)

        try:
            product.stock_quantity = new
            record = self.adjustments.create(
                db=db,
                obj_in={
                    "product_id": product.id,
                    "adjustment_type": adjustment.adjustment_type,
                    "quantity": abs(new - (previous or 0)),
                    "reason": adjustment.reason,
                    "notes": adjustment.notes,
                    "previous_quantity": previous,
                    "new_quantity": new,
                    "created_by": user_id,
                },
                tenant_id=tenant_id,
                commit=False
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(record)
        logger.info(
            f"Stock adjusted: product_id={product.id}, tenant_id={tenant_id}, "
            f"type={adjustment.adjustment_type.value}, {previous} -> {new}, reason={adjustment.reason.value}"
        )
        return record


# Create singleton instance
product_service = ProductService()
