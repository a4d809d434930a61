from pydantic import Field, model_validator
from typing import List, Optional
from datetime import datetime
from crm.models.order import OrderStatus, PaymentMethod
from crm.schemas.common import MAX_QUANTITY, APIModel, Amount, Id

class OrderItemCreate(APIModel):
    product_id: Optional[Id] = None
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY)
    unit_price_cents: Optional[Amount] = None

    @model_validator(mode="after")
    def check_product_or_price(self):
        # Free-form lines need their own description and price
        if self.product_id is None and (self.description is None or self.unit_price_cents is None):
            raise ValueError("description and unitPriceCents are required when productId is not set")
        return self

class OrderCreate(APIModel):
    customer_id: Optional[Id] = None
    payment_method: PaymentMethod = PaymentMethod.cash
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(..., min_length=1, max_length=200)

class OrderStatusUpdate(APIModel):
    status: OrderStatus

class OrderItemResponse(APIModel):
    id: int
    product_id: Optional[int] = None
    description: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int

class OrderResponse(APIModel):
    id: int
    tenant_id: int
    customer_id: Optional[int] = None
    status: OrderStatus
    payment_method: PaymentMethod
    total_cents: int
    notes: Optional[str] = None
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: datetime
