from pydantic import Field
from typing import Optional
from datetime import datetime
from crm.models.product import AdjustmentReason, AdjustmentType
from crm.schemas.common import MAX_STOCK, APIModel, Amount, Id

class ProductBase(APIModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = None
    price_cents: Amount
    stock_quantity: Optional[int] = Field(None, ge=0, le=MAX_STOCK)
    is_active: bool = True

class ProductCreate(ProductBase):
    pass

class ProductUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = None
    price_cents: Optional[Amount] = None
    stock_quantity: Optional[int] = Field(None, ge=0, le=MAX_STOCK)
    is_active: Optional[bool] = None

class ProductResponse(ProductBase):
    id: int
    tenant_id: int
    created_at: datetime
    updated_at: datetime

class InventoryAdjustmentCreate(APIModel):
    product_id: Id
    adjustment_type: AdjustmentType
    # Amount moved for increase/decrease, the counted stock level for a correction
    quantity: int = Field(..., ge=0, le=MAX_STOCK, strict=True)
    reason: AdjustmentReason = AdjustmentReason.other
    notes: Optional[str] = Field(None, max_length=1000)

class InventoryAdjustmentResponse(APIModel):
    id: int
    tenant_id: int
    product_id: int
    adjustment_type: AdjustmentType
    quantity: int
    reason: AdjustmentReason
    notes: Optional[str] = None
    previous_quantity: Optional[int] = None
    new_quantity: int
    created_by: str
    created_at: datetime
