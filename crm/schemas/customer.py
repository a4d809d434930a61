from pydantic import EmailStr, Field
from typing import Optional
from datetime import datetime
from crm.schemas.common import APIModel

class CustomerBase(APIModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None

class CustomerCreate(CustomerBase):
    pass

class CustomerUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None

class CustomerResponse(CustomerBase):
    id: int
    tenant_id: int
    created_at: datetime
    updated_at: datetime
