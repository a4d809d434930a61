from crm.crud.base import CRUDBase
from .tenant import tenant
from .membership import membership, invitation
from .customer import customer
from .product import product, inventory_adjustment
from .order import order
from .credit import credit_account, credit_transaction
from .loyalty import loyalty, loyalty_program
from .delivery import delivery

__all__ = [
    "CRUDBase", "tenant", "membership", "invitation", "customer", "product",
    "inventory_adjustment", "order", "credit_account", "credit_transaction", "loyalty",
    "loyalty_program", "delivery",
]
