from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import Optional
from crm.database import get_db
from crm.models.credit import CreditTransactionStatus, CreditTransactionType
from crm.schemas.credit import (
    CreditAccountResponse,
    CreditAccountUpdate,
    CreditSummary,
    CreditTransactionCreate,
    CreditTransactionList,
    CreditTransactionResponse,
    CreditTransactionStatusUpdate,
    PaymentMethodConfirm,
    SetupIntentRequest,
    SetupIntentResponse,
)
from crm.services import credit_service
from crm.services.credit import DEFAULT_PAGE_SIZE
from crm.schemas.common import MAX_ID
from crm.core.exceptions import AppError
from crm.core.feature_flags import FeatureFlag, require_feature
from crm.core.logging_config import logger
from crm.core.payments import PaymentProvider, get_payment_provider
from crm.core.roles import Role
from crm.core.tenant_context import TenantContext, require_role
from crm.dependencies import ResourceId

router = APIRouter()

# Kill switch for every credit mutation
credit_writes = require_feature(FeatureFlag.CREDIT_WRITES)


@router.get("", response_model=CreditSummary)
def get_credit_summary(
    credit_id: Optional[int] = Query(None, alias="creditId", ge=1, le=MAX_ID),
    customer_id: Optional[int] = Query(None, alias="customerId", ge=1, le=MAX_ID),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    """
    Get a credit account with its derived balance and recent transactions.

    The account is addressed by creditId or customerId. availableCredit is
    creditLimit minus currentBalance and may be negative.
    """
    return credit_service.get_account_summary(
        db=db,
        tenant_id=ctx.tenant_id,
        credit_id=credit_id,
        customer_id=customer_id
    )


@router.put("", response_model=CreditAccountResponse)
def upsert_credit_account(
    account_data: CreditAccountUpdate,
    response: Response,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin)),
    _writes: None = Depends(credit_writes)
):
    """
    Create or update a customer's credit account.

    Returns 201 when a new account was created, 200 otherwise.

    Raises:
        Validation 400: If customerId is missing for a new account, or a
            closed account would be reopened
        NotFound 404: If creditId or the customer is not in the tenant
        Conflict 409: If the account was created concurrently
    """
    account, created = credit_service.create_or_update_account(
        db=db,
        tenant_id=ctx.tenant_id,
        account_data=account_data
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return account


@router.post("/setup-intent", response_model=SetupIntentResponse)
def create_setup_intent(
    request: SetupIntentRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin)),
    _writes: None = Depends(credit_writes),
    _setup: None = Depends(require_feature(FeatureFlag.CREDIT_SETUP_INTENT)),
    provider: PaymentProvider = Depends(get_payment_provider)
):
    """
    Start saving a payment method for a credit account.

    Returns the client secret the frontend needs to finish the setup with
    the payment provider.
    """
    logger.info(f"Creating setup intent: credit_id={request.credit_id}, tenant_id={ctx.tenant_id}")
    return credit_service.create_setup_intent(
        db=db,
        tenant_id=ctx.tenant_id,
        request=request,
        provider=provider
    )


@router.post("/payment-method", response_model=CreditAccountResponse)
def confirm_payment_method(
    request: PaymentMethodConfirm,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.admin)),
    _writes: None = Depends(credit_writes),
    _setup: None = Depends(require_feature(FeatureFlag.CREDIT_SETUP_INTENT)),
    provider: PaymentProvider = Depends(get_payment_provider)
):
    """
    Store the payment method saved by a finished setup intent on the account.

    Raises:
        Validation 400: If no setup was started or it has not succeeded yet
    """
    return credit_service.confirm_payment_method(
        db=db,
        tenant_id=ctx.tenant_id,
        request=request,
        provider=provider
    )


@router.get("/transactions", response_model=CreditTransactionList)
def get_credit_transactions(
    credit_id: Optional[int] = Query(None, alias="creditId", ge=1, le=MAX_ID),
    transaction_status: Optional[CreditTransactionStatus] = Query(None, alias="status"),
    transaction_type: Optional[CreditTransactionType] = Query(None, alias="type"),
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.viewer))
):
    """
    List credit transactions, newest first.

    limit is clamped to 1-100 and offset to 0 or more; the values actually
    used are echoed back.
    """
    transactions, limit, offset = credit_service.list_transactions(
        db=db,
        tenant_id=ctx.tenant_id,
        credit_id=credit_id,
        status=transaction_status,
        transaction_type=transaction_type,
        limit=limit,
        offset=offset
    )
    return CreditTransactionList(
        transactions=[CreditTransactionResponse.model_validate(t) for t in transactions],
        limit=limit,
        offset=offset
    )


@router.post("/transactions", response_model=CreditTransactionResponse, status_code=status.HTTP_201_CREATED)
def create_credit_transaction(
    transaction_data: CreditTransactionCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    _writes: None = Depends(credit_writes)
):
    """
    Record a credit transaction.

    Charges, fees and payments take a positive amount; the stored sign
    follows the type. Adjustments take a signed, non-zero amount. Repeating
    a request with the same idempotencyKey returns the original transaction.

    Raises:
        Validation 400: If the amount is invalid, the account cannot take the
            transaction, or a charge exceeds available credit
        NotFound 404: If the credit account is not in the tenant
    """
    try:
        logger.info(
            f"Recording credit transaction: credit_id={transaction_data.credit_id}, "
            f"type={transaction_data.transaction_type.value}, tenant_id={ctx.tenant_id}"
        )
        return credit_service.record_transaction(
            db=db,
            tenant_id=ctx.tenant_id,
            transaction_data=transaction_data
        )
    except AppError as e:
        logger.info(f"Credit transaction rejected: {type(e).__name__}: {e.message}")
        raise
    except Exception as e:
        logger.error(f"Error recording credit transaction: {type(e).__name__}: {str(e)}")
        raise


@router.patch("/transactions/{transaction_id}", response_model=CreditTransactionResponse)
def update_credit_transaction_status(
    transaction_id: ResourceId,
    status_data: CreditTransactionStatusUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    _writes: None = Depends(credit_writes)
):
    return credit_service.update_transaction_status(
        db=db,
        tenant_id=ctx.tenant_id,
        transaction_id=transaction_id,
        new_status=status_data.status
    )


@router.post(
    "/transactions/{transaction_id}/reverse",
    response_model=CreditTransactionResponse,
    status_code=status.HTTP_201_CREATED
)
def reverse_credit_transaction(
    transaction_id: ResourceId,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_role(Role.manager)),
    _writes: None = Depends(credit_writes)
):
    """
    Reverse a completed transaction by appending a compensating adjustment.

    Raises:
        Conflict 409: If the transaction was already reversed
    """
    logger.info(f"Reversing credit transaction: id={transaction_id}, tenant_id={ctx.tenant_id}")
    return credit_service.reverse_transaction(db=db, tenant_id=ctx.tenant_id, transaction_id=transaction_id)
