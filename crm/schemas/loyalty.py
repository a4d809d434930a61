from pydantic import Field, model_validator
from typing import List, Optional
from datetime import datetime
from crm.models.loyalty import LoyaltyTransactionType
from crm.schemas.common import MAX_AMOUNT, APIModel, Id

class LoyaltyProgramBase(APIModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True
    points_per_dollar: int = Field(1, ge=1, le=10_000)
    minimum_redemption: int = Field(100, ge=1, le=MAX_AMOUNT)
    expiration_months: Optional[int] = Field(None, ge=1, le=1200)

class LoyaltyProgramCreate(LoyaltyProgramBase):
    pass

class LoyaltyProgramUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    points_per_dollar: Optional[int] = Field(None, ge=1, le=10_000)
    minimum_redemption: Optional[int] = Field(None, ge=1, le=MAX_AMOUNT)
    expiration_months: Optional[int] = Field(None, ge=1, le=1200)

class LoyaltyProgramResponse(LoyaltyProgramBase):
    id: int
    tenant_id: int
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class LoyaltyPointsRequest(APIModel):
    customer_id: Id
    program_id: Optional[Id] = None
    points: int = Field(..., gt=0, le=MAX_AMOUNT, strict=True)
    description: Optional[str] = Field(None, max_length=255)

class LoyaltyAccrueRequest(LoyaltyPointsRequest):
    # Without points, the order total is converted at the program's rate
    points: Optional[int] = Field(None, gt=0, le=MAX_AMOUNT, strict=True)
    order_id: Optional[Id] = None

    @model_validator(mode="after")
    def check_points_or_order(self):
        if self.points is None and self.order_id is None:
            raise ValueError("points or orderId is required")
        return self

class LoyaltyAdjustRequest(APIModel):
    customer_id: Id
    program_id: Optional[Id] = None
    points: int = Field(..., ge=-MAX_AMOUNT, le=MAX_AMOUNT, strict=True)
    description: Optional[str] = Field(None, max_length=255)

class LoyaltyBalanceResponse(APIModel):
    customer_id: int
    program_id: Optional[int] = None
    balance: int

class LoyaltyTransactionResponse(APIModel):
    id: int
    type: LoyaltyTransactionType
    points: int
    description: Optional[str] = None
    order_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

class LoyaltyAccountResponse(LoyaltyBalanceResponse):
    recent_transactions: List[LoyaltyTransactionResponse]
