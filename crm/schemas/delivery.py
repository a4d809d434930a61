from pydantic import Field
from typing import Any, Dict, Optional
from datetime import datetime
from crm.models.delivery import DeliveryMethod, DeliveryStatus
from crm.schemas.common import MAX_AMOUNT, APIModel, Amount, Id

class DeliveryBase(APIModel):
    method: DeliveryMethod
    order_id: Optional[Id] = None
    cost_cents: int = Field(0, ge=0, le=MAX_AMOUNT)
    address: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

class DeliveryCreate(DeliveryBase):
    pass

class DeliveryUpdate(APIModel):
    method: Optional[DeliveryMethod] = None
    status: Optional[DeliveryStatus] = None
    cost_cents: Optional[Amount] = None
    address: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

class DeliveryResponse(DeliveryBase):
    id: int
    tenant_id: int
    status: DeliveryStatus
    created_at: datetime
    updated_at: datetime
