from crm.services.authorization import authorization_service
from crm.services.tenant import tenant_service
from crm.services.membership import membership_service
from .customer import customer_service
from .product import product_service
from .order import order_service
from .credit import credit_service
from .loyalty import loyalty_service
from .delivery import delivery_service

__all__ = [
    "authorization_service", "tenant_service", "membership_service", "customer_service",
    "product_service", "order_service", "credit_service", "loyalty_service", "delivery_service",
]
