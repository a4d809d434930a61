from pydantic import EmailStr, Field, field_validator
from typing import List, Optional
from datetime import datetime
from crm.models.credit import CreditAccountStatus, CreditTransactionStatus, CreditTransactionType
from crm.schemas.common import MAX_AMOUNT, APIModel, Amount, Id


class CreditAccountUpdate(APIModel):
    credit_id: Optional[Id] = None
    customer_id: Optional[Id] = None
    credit_limit: Optional[Amount] = None
    status: Optional[CreditAccountStatus] = None


class CreditAccountResponse(APIModel):
    id: int
    tenant_id: int
    customer_id: int
    credit_limit: int
    status: CreditAccountStatus
    payment_customer_ref: Optional[str] = None
    payment_method_ref: Optional[str] = None
    setup_intent_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CreditTransactionCreate(APIModel):
    credit_id: Id
    transaction_type: CreditTransactionType
    # Minor currency units. Magnitude for charge/fee/payment, signed for adjustment.
    amount: int = Field(..., strict=True, ge=-MAX_AMOUNT, le=MAX_AMOUNT)
    description: Optional[str] = Field(None, max_length=500)
    order_id: Optional[Id] = None
    due_date: Optional[datetime] = None
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)
    status: CreditTransactionStatus = CreditTransactionStatus.completed

    @field_validator("status")
    @classmethod
    def check_initial_status(cls, v):
        if v not in (CreditTransactionStatus.pending, CreditTransactionStatus.completed):
            raise ValueError("status must be 'pending' or 'completed' when recording a transaction")
        return v


class CreditTransactionStatusUpdate(APIModel):
    status: CreditTransactionStatus


class CreditTransactionResponse(APIModel):
    id: int
    tenant_id: int
    credit_id: int
    transaction_type: CreditTransactionType
    amount: int
    status: CreditTransactionStatus
    idempotency_key: str
    description: Optional[str] = None
    order_id: Optional[int] = None
    due_date: Optional[datetime] = None
    reversal_of_id: Optional[int] = None
    created_at: datetime


class CreditTransactionList(APIModel):
    transactions: List[CreditTransactionResponse]
    limit: int
    offset: int


class CreditSummary(APIModel):
    credit_id: int
    customer_id: int
    credit_limit: int
    current_balance: int
    available_credit: int
    status: CreditAccountStatus
    recent_transactions: List[CreditTransactionResponse]


class SetupIntentRequest(APIModel):
    credit_id: Id
    customer_email: Optional[EmailStr] = None


class SetupIntentResponse(APIModel):
    setup_intent_id: str
    client_secret: str


class PaymentMethodConfirm(APIModel):
    credit_id: Id
