from .credit import CreditAccount, CreditTransaction
from .customer import Customer
from .delivery import Delivery
from .loyalty import LoyaltyAccount, LoyaltyProgram, LoyaltyTransaction
from .membership import Invitation, Membership
from .order import Order, OrderItem
from .product import InventoryAdjustment, Product
from .tenant import Tenant
