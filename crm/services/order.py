from collections import defaultdict
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from crm.crud import credit_transaction as credit_transaction_crud
from crm.crud import customer as customer_crud
from crm.crud import order as order_crud
from crm.crud import product as product_crud
from crm.core.exceptions import InvalidInput, NotFound, Unavailable
from crm.core.feature_flags import FeatureFlag, FlagProvider
from crm.core.logging_config import logger
from crm.models.credit import CreditTransactionStatus, CreditTransactionType
from crm.models.order import Order, OrderStatus, PaymentMethod
from crm.models.product import Product
from crm.schemas.common import MAX_AMOUNT, MAX_STOCK
from crm.schemas.order import OrderCreate
from crm.services.credit import credit_service

_ALLOWED_TRANSITIONS = {
    OrderStatus.pending: {OrderStatus.paid, OrderStatus.fulfilled, OrderStatus.cancelled},
    OrderStatus.paid: {OrderStatus.fulfilled, OrderStatus.cancelled},
    OrderStatus.fulfilled: set(),
    OrderStatus.cancelled: set(),
}


def order_charge_key(order_id: int) -> str:
    return f"order-{order_id}"


class OrderService:
    """
    Service layer for orders.

    An order, its items, stock movements and any credit charge are written in
    a single database transaction: either all of them are committed or none.
    """

    def __init__(self):
        self.crud = order_crud

    def get_order(self, db: Session, order_id: int, tenant_id: int) -> Order:
        order = self.crud.get(db=db, id=order_id, tenant_id=tenant_id)
        if not order:
            raise NotFound("Order not found")
        return order

    def get_orders(
        self,
        db: Session,
        tenant_id: int,
        customer_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Order]:
        return self.crud.get_filtered(
            db=db, tenant_id=tenant_id, customer_id=customer_id, status=status, skip=skip, limit=limit
        )

    def _lock_products(self, db: Session, product_ids: List[int], tenant_id: int) -> Dict[int, Product]:
        products = {}
        # Fixed lock order across requests
        for product_id in sorted(set(product_ids)):
            product = product_crud.get(db=db, id=product_id, tenant_id=tenant_id, for_update=True)
            if not product:
                raise NotFound(f"Product {product_id} not found")
            if not product.is_active:
                raise InvalidInput(f"Product {product_id} is not available")
            products[product_id] = product
        return products

    def _resolve_items(self, db: Session, order_data: OrderCreate, tenant_id: int) -> List[dict]:
        products = self._lock_products(
            db, [i.product_id for i in order_data.items if i.product_id is not None], tenant_id
        )

        items = []
        quantities = defaultdict(int)
        for item in order_data.items:
            product = products.get(item.product_id) if item.product_id is not None else None
            if product is not None:
                quantities[product.id] += item.quantity
            items.append({
                "product_id": item.product_id,
                "description": item.description or product.name,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents if item.unit_price_cents is not None else product.price_cents,
            })

        if sum(item["quantity"] * item["unit_price_cents"] for item in items) > MAX_AMOUNT:
            raise InvalidInput("Order total is too large")

        for product_id, quantity in quantities.items():
            product = products[product_id]
            if product.stock_quantity is None:
                continue
            if product.stock_quantity < quantity:
                raise InvalidInput(f"Insufficient stock for product {product_id}")
            product.stock_quantity -= quantity

        return items

    def create_order(
        self,
        db: Session,
        order_data: OrderCreate,
        tenant_id: int,
        flags: FlagProvider
    ) -> Order:
        """
        Create an order with its items.

        Items that reference a product default to the product's name and
        price and draw down tracked stock. Orders paid on credit are charged
        to the customer's credit account under the usual limit rules and are
        created as paid.

        Raises:
            NotFound: If the customer or a product does not exist in the tenant
            InvalidInput: If stock, credit account state or limit forbid it
            Unavailable: If charging orders to credit is switched off
        """
        on_credit = order_data.payment_method == PaymentMethod.credit
        if on_credit:
            if not flags.is_enabled(FeatureFlag.ORDERS_ON_CREDIT.value):
                raise Unavailable(f"Feature '{FeatureFlag.ORDERS_ON_CREDIT.value}' is disabled")
            if order_data.customer_id is None:
                raise InvalidInput("customerId is required for orders paid on credit")

        if order_data.customer_id is not None:
            if not customer_crud.get(db=db, id=order_data.customer_id, tenant_id=tenant_id):
                raise NotFound("Customer not found")

        try:
            items = self._resolve_items(db, order_data, tenant_id)
            order = self.crud.create_with_items(
                db=db,
                tenant_id=tenant_id,
                customer_id=order_data.customer_id,
                payment_method=order_data.payment_method,
                notes=order_data.notes,
                items=items
            )

            if on_credit:
                account = credit_service.get_account(
                    db, tenant_id, customer_id=order_data.customer_id, for_update=True
                )
                if order.total_cents > 0:
                    credit_service.append_transaction(
                        db,
                        account=account,
                        transaction_type=CreditTransactionType.charge,
                        amount=order.total_cents,
                        idempotency_key=order_charge_key(order.id),
                        description=f"Order {order.id}",
                        order_id=order.id,
                        commit=False
                    )
                order.status = OrderStatus.paid

            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(order)
        logger.info(
            f"Order created: id={order.id}, tenant_id={tenant_id}, total_cents={order.total_cents}, "
            f"payment_method={order.payment_method.value}"
        )
        return order

    def update_status(self, db: Session, order_id: int, new_status: OrderStatus, tenant_id: int) -> Order:
        """
        Move an order along pending -> paid -> fulfilled, or cancel it.

        Cancelling returns tracked stock and reverses the credit charge of an
        order paid on credit, in the same transaction as the status change.
        """
        order = self.crud.get(db=db, id=order_id, tenant_id=tenant_id, for_update=True)
        if not order:
            raise NotFound("Order not found")
        if new_status == order.status:
            return order
        if new_status not in _ALLOWED_TRANSITIONS[order.status]:
            raise InvalidInput(f"Cannot change order from {order.status.value} to {new_status.value}")

        try:
            if new_status == OrderStatus.cancelled:
                self._restock(db, order)
                self._reverse_charge(db, order)
            order.status = new_status
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(order)
        logger.info(f"Order status updated: id={order.id}, status={new_status.value}")
        return order

    def _restock(self, db: Session, order: Order) -> None:
        product_ids = [item.product_id for item in order.items if item.product_id is not None]
        if not product_ids:
            return
        products = {
            product_id: product_crud.get(db=db, id=product_id, tenant_id=order.tenant_id, for_update=True)
            for product_id in sorted(set(product_ids))
        }
        for item in order.items:
            product = products.get(item.product_id)
            if product is not None and product.stock_quantity is not None:
                product.stock_quantity = min(product.stock_quantity + item.quantity, MAX_STOCK)

    def _reverse_charge(self, db: Session, order: Order) -> None:
        if order.payment_method != PaymentMethod.credit:
            return
        charge = credit_transaction_crud.get_by_idempotency_key(
            db=db, idempotency_key=order_charge_key(order.id), tenant_id=order.tenant_id
        )
        if charge is None or charge.status != CreditTransactionStatus.completed:
            return
        if credit_transaction_crud.get_reversal(db=db, transaction_id=charge.id, tenant_id=order.tenant_id):
            return

        account = credit_service.get_account(db, order.tenant_id, credit_id=charge.credit_id, for_update=True)
        credit_service.append_transaction(
            db,
            account=account,
            transaction_type=CreditTransactionType.adjustment,
            amount=-charge.amount,
            idempotency_key=f"reversal-{charge.id}",
            description=f"Order {order.id} cancelled",
            order_id=order.id,
            reversal_of_id=charge.id,
            commit=False
        )


# Create singleton instance
order_service = OrderService()
