import secrets
import time
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from crm.crud import credit_account as credit_account_crud
from crm.crud import credit_transaction as credit_transaction_crud
from crm.crud import customer as customer_crud
from crm.crud import order as order_crud
from crm.core.exceptions import Conflict, InvalidInput, NotFound
from crm.core.logging_config import logger
from crm.core.payments import PaymentProvider
from crm.models.credit import (
    CreditAccount,
    CreditAccountStatus,
    CreditTransaction,
    CreditTransactionStatus,
    CreditTransactionType,
)
from crm.schemas.common import BIGINT_MAX
from crm.schemas.credit import (
    CreditAccountUpdate,
    PaymentMethodConfirm,
    CreditSummary,
    CreditTransactionCreate,
    CreditTransactionResponse,
    SetupIntentRequest,
    SetupIntentResponse,
)

RECENT_TRANSACTIONS = 10
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# Callers pass a positive magnitude for these; the stored sign comes from the type
_SIGN_BY_TYPE = {
    CreditTransactionType.charge: 1,
    CreditTransactionType.fee: 1,
    CreditTransactionType.payment: -1,
}


def synthesize_idempotency_key(tenant_id: int) -> str:
    """Fallback key for callers that send none. Unique, but gives no replay protection."""
    return f"{tenant_id}-{int(time.time() * 1000)}-{secrets.token_hex(8)}"


def signed_amount(transaction_type: CreditTransactionType, amount: int) -> int:
    """
    Convert a requested amount to the stored signed amount.

    Raises:
        InvalidInput: If a charge, fee or payment is not positive, or an
            adjustment is zero
    """
    if transaction_type == CreditTransactionType.adjustment:
        if amount == 0:
            raise InvalidInput("Adjustment amount must not be zero")
        return amount

    if amount <= 0:
        raise InvalidInput(f"Amount for a {transaction_type.value} must be a positive integer")
    return _SIGN_BY_TYPE[transaction_type] * amount


class CreditService:
    """
    Service layer for customer credit accounts and their ledger.

    The balance of an account is the sum of its completed transactions and is
    computed on every read. Every write that depends on the balance first
    locks the account row, so writes against one account are serialized by
    the database.

    Over-limit policy: a completed charge that would take available credit
    below zero is rejected. Reads report available credit as is, negative
    values included.
    """

    def __init__(self):
        self.accounts = credit_account_crud
        self.transactions = credit_transaction_crud

    # Accounts

    def get_account(
        self,
        db: Session,
        tenant_id: int,
        credit_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        for_update: bool = False
    ) -> CreditAccount:
        """
        Look up an account by its ID or by customer.

        Raises:
            InvalidInput: If neither credit_id nor customer_id is given
            NotFound: If no matching account exists in the tenant
        """
        if credit_id is not None:
            account = self.accounts.get(db=db, id=credit_id, tenant_id=tenant_id, for_update=for_update)
        elif customer_id is not None:
            account = self.accounts.get_by_customer(
                db=db, customer_id=customer_id, tenant_id=tenant_id, for_update=for_update
            )
        else:
            raise InvalidInput("creditId or customerId is required")

        if not account:
            raise NotFound("Credit account not found")
        return account

    def get_balance(self, db: Session, account: CreditAccount) -> int:
        return self.transactions.get_balance(db=db, credit_id=account.id, tenant_id=account.tenant_id)

    def get_account_summary(
        self,
        db: Session,
        tenant_id: int,
        credit_id: Optional[int] = None,
        customer_id: Optional[int] = None
    ) -> CreditSummary:
        account = self.get_account(db, tenant_id, credit_id=credit_id, customer_id=customer_id)
        balance = self.get_balance(db, account)
        recent = self.transactions.get_recent(
            db=db, credit_id=account.id, tenant_id=tenant_id, limit=RECENT_TRANSACTIONS
        )

        return CreditSummary(
            credit_id=account.id,
            customer_id=account.customer_id,
            credit_limit=account.credit_limit,
            current_balance=balance,
            available_credit=account.credit_limit - balance,
            status=account.status,
            recent_transactions=[CreditTransactionResponse.model_validate(t) for t in recent],
        )

    def create_or_update_account(
        self,
        db: Session,
        tenant_id: int,
        account_data: CreditAccountUpdate
    ) -> Tuple[CreditAccount, bool]:
        """
        Update the account named by creditId or customerId, or create one.

        Args:
            db: Database session
            tenant_id: Tenant ID for isolation
            account_data: Target and new values; unset fields are left alone

        Returns:
            Tuple of (account, created)

        Raises:
            InvalidInput: If no target is given, a closed account would be
                reopened, or creditId and customerId disagree
            NotFound: If creditId or the customer does not exist in the tenant
            Conflict: If a concurrent request created the same account
        """
        changes = account_data.model_dump(include={"credit_limit", "status"}, exclude_none=True)

        if account_data.credit_id is not None:
            account = self.get_account(db, tenant_id, credit_id=account_data.credit_id, for_update=True)
            if account_data.customer_id is not None and account_data.customer_id != account.customer_id:
                raise InvalidInput("customerId does not match the credit account")
        elif account_data.customer_id is not None:
            account = self.accounts.get_by_customer(
                db=db, customer_id=account_data.customer_id, tenant_id=tenant_id, for_update=True
            )
        else:
            raise InvalidInput("customerId is required for new credit accounts")

        if account is not None:
            new_status = changes.get("status")
            if account.status == CreditAccountStatus.closed and new_status not in (None, CreditAccountStatus.closed):
                raise InvalidInput("Closed credit accounts cannot be reopened")
            account = self.accounts.update(db=db, db_obj=account, obj_in=changes)
            logger.info(f"Credit account updated: id={account.id}, tenant_id={tenant_id}, changes={list(changes)}")
            return account, False

        if not customer_crud.get(db=db, id=account_data.customer_id, tenant_id=tenant_id):
            raise NotFound("Customer not found")

        try:
            account = self.accounts.create(
                db=db,
                obj_in={"customer_id": account_data.customer_id, **changes},
                tenant_id=tenant_id
            )
        except IntegrityError:
            db.rollback()
            raise Conflict("Credit account already exists for this customer")

        logger.info(f"Credit account created: id={account.id}, tenant_id={tenant_id}, customer_id={account.customer_id}")
        return account, True

    # Ledger

    def _check_can_post(
        self,
        account: CreditAccount,
        transaction_type: CreditTransactionType,
        compensating: bool = False
    ) -> None:
        # Reversals only undo earlier rows, so they may land on a closed account
        if account.status == CreditAccountStatus.closed and not compensating:
            raise InvalidInput("Credit account is closed")
        if transaction_type == CreditTransactionType.charge and account.status != CreditAccountStatus.active:
            raise InvalidInput(f"Cannot charge a {account.status.value} credit account")

    def _check_balance(
        self,
        db: Session,
        account: CreditAccount,
        transaction_type: CreditTransactionType,
        amount: int
    ) -> None:
        """Check the effect of completing a signed amount on the account balance."""
        balance = self.get_balance(db, account)
        if abs(balance + amount) > BIGINT_MAX:
            raise InvalidInput("Amount would take the account balance out of range")
        if transaction_type != CreditTransactionType.charge:
            return
        if account.credit_limit - (balance + amount) < 0:
            raise InvalidInput(
                "Charge exceeds available credit",
                details=[{
                    "field": "amount",
                    "message": f"Available credit is {account.credit_limit - balance}",
                    "type": "over_limit",
                }]
            )

    def append_transaction(
        self,
        db: Session,
        *,
        account: CreditAccount,
        transaction_type: CreditTransactionType,
        amount: int,
        status: CreditTransactionStatus = CreditTransactionStatus.completed,
        idempotency_key: Optional[str] = None,
        description: Optional[str] = None,
        order_id: Optional[int] = None,
        due_date=None,
        reversal_of_id: Optional[int] = None,
        commit: bool = True
    ) -> CreditTransaction:
        """
        Validate and add one ledger row for an account that is already locked.

        ``amount`` is the requested amount; the stored sign is derived from
        the transaction type.
        """
        signed = signed_amount(transaction_type, amount)
        self._check_can_post(account, transaction_type, compensating=reversal_of_id is not None)
        if status == CreditTransactionStatus.completed:
            self._check_balance(db, account, transaction_type, signed)

        return self.transactions.create(
            db=db,
            obj_in={
                "credit_id": account.id,
                "transaction_type": transaction_type,
                "amount": signed,
                "status": status,
                "idempotency_key": idempotency_key or synthesize_idempotency_key(account.tenant_id),
                "description": description,
                "order_id": order_id,
                "due_date": due_date,
                "reversal_of_id": reversal_of_id,
            },
            tenant_id=account.tenant_id,
            commit=commit
        )

    def _replay(self, db: Session, tenant_id: int, idempotency_key: str, credit_id: int) -> Optional[CreditTransaction]:
        existing = self.transactions.get_by_idempotency_key(
            db=db, idempotency_key=idempotency_key, tenant_id=tenant_id
        )
        if existing and existing.credit_id != credit_id:
            raise Conflict("Idempotency key was already used for another credit account")
        return existing

    def record_transaction(
        self,
        db: Session,
        tenant_id: int,
        transaction_data: CreditTransactionCreate
    ) -> CreditTransaction:
        """
        Record a ledger transaction, at most once per idempotency key.

        Args:
            db: Database session
            tenant_id: Tenant ID for isolation
            transaction_data: Transaction request

        Returns:
            The new transaction, or the existing one when the key was seen before

        Raises:
            NotFound: If the account or linked order does not exist in the tenant
            InvalidInput: If the amount, account status or credit limit forbid it
            Conflict: If the key belongs to another account
        """
        key = transaction_data.idempotency_key
        if key:
            existing = self._replay(db, tenant_id, key, transaction_data.credit_id)
            if existing:
                logger.info(f"Credit transaction replayed: id={existing.id}, tenant_id={tenant_id}")
                return existing

        account = self.get_account(db, tenant_id, credit_id=transaction_data.credit_id, for_update=True)

        if transaction_data.order_id is not None:
            if not order_crud.get(db=db, id=transaction_data.order_id, tenant_id=tenant_id):
                raise NotFound("Order not found")

        try:
            transaction = self.append_transaction(
                db,
                account=account,
                transaction_type=transaction_data.transaction_type,
                amount=transaction_data.amount,
                status=transaction_data.status,
                idempotency_key=key,
                description=transaction_data.description,
                order_id=transaction_data.order_id,
                due_date=transaction_data.due_date
            )
        except IntegrityError:
            # Lost a race with a request carrying the same key
            db.rollback()
            existing = self._replay(db, tenant_id, key, transaction_data.credit_id) if key else None
            if existing:
                return existing
            raise Conflict("Credit transaction conflicts with an existing transaction")

        logger.info(
            f"Credit transaction recorded: id={transaction.id}, credit_id={account.id}, "
            f"type={transaction.transaction_type.value}, amount={transaction.amount}"
        )
        return transaction

    def list_transactions(
        self,
        db: Session,
        tenant_id: int,
        credit_id: Optional[int] = None,
        status: Optional[CreditTransactionStatus] = None,
        transaction_type: Optional[CreditTransactionType] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0
    ) -> Tuple[List[CreditTransaction], int, int]:
        """
        List transactions, newest first.

        Out-of-range paging values are clamped rather than rejected.

        Returns:
            Tuple of (transactions, effective limit, effective offset)
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, min(offset, BIGINT_MAX))
        transactions = self.transactions.get_filtered(
            db=db,
            tenant_id=tenant_id,
            credit_id=credit_id,
            status=status,
            transaction_type=transaction_type,
            offset=offset,
            limit=limit
        )
        return transactions, limit, offset

    def _get_transaction(self, db: Session, transaction_id: int, tenant_id: int) -> CreditTransaction:
        transaction = self.transactions.get(db=db, id=transaction_id, tenant_id=tenant_id)
        if not transaction:
            raise NotFound("Credit transaction not found")
        return transaction

    def update_transaction_status(
        self,
        db: Session,
        tenant_id: int,
        transaction_id: int,
        new_status: CreditTransactionStatus
    ) -> CreditTransaction:
        """
        Settle a pending transaction.

        Only pending rows move, to completed, failed or reversed. Completing a
        charge applies the same limit check as recording a completed one.

        Raises:
            NotFound: If the transaction does not exist in the tenant
            InvalidInput: If the transition is not allowed
        """
        transaction = self._get_transaction(db, transaction_id, tenant_id)
        if transaction.status == new_status:
            return transaction

        # Account first, then the row, same order as record_transaction
        account = self.get_account(db, tenant_id, credit_id=transaction.credit_id, for_update=True)
        transaction = self.transactions.get(db=db, id=transaction_id, tenant_id=tenant_id, for_update=True)

        if transaction.status != CreditTransactionStatus.pending:
            raise InvalidInput(f"Cannot change status of a {transaction.status.value} transaction")

        if new_status == CreditTransactionStatus.completed:
            self._check_can_post(account, transaction.transaction_type)
            self._check_balance(db, account, transaction.transaction_type, transaction.amount)

        transaction = self.transactions.update(db=db, db_obj=transaction, obj_in={"status": new_status})
        logger.info(f"Credit transaction status updated: id={transaction.id}, status={new_status.value}")
        return transaction

    def reverse_transaction(
        self,
        db: Session,
        tenant_id: int,
        transaction_id: int,
        description: Optional[str] = None
    ) -> CreditTransaction:
        """
        Cancel the effect of a completed transaction.

        A completed adjustment of opposite sign is appended and linked to the
        original through reversal_of_id. The original row is not modified.

        Raises:
            NotFound: If the transaction does not exist in the tenant
            InvalidInput: If it is not completed or is itself a reversal
            Conflict: If it has already been reversed
        """
        original = self._get_transaction(db, transaction_id, tenant_id)
        if original.status != CreditTransactionStatus.completed:
            raise InvalidInput("Only completed transactions can be reversed")
        if original.reversal_of_id is not None:
            raise InvalidInput("A reversal cannot be reversed")

        account = self.get_account(db, tenant_id, credit_id=original.credit_id, for_update=True)
        if self.transactions.get_reversal(db=db, transaction_id=original.id, tenant_id=tenant_id):
            raise Conflict("Transaction has already been reversed")

        try:
            reversal = self.append_transaction(
                db,
                account=account,
                transaction_type=CreditTransactionType.adjustment,
                amount=-original.amount,
                idempotency_key=f"reversal-{original.id}",
                description=description or f"Reversal of transaction {original.id}",
                order_id=original.order_id,
                reversal_of_id=original.id
            )
        except IntegrityError:
            db.rollback()
            raise Conflict("Transaction has already been reversed")

        logger.info(f"Credit transaction reversed: id={original.id}, reversal_id={reversal.id}")
        return reversal

    # Payment methods

    def create_setup_intent(
        self,
        db: Session,
        tenant_id: int,
        request: SetupIntentRequest,
        provider: PaymentProvider
    ) -> SetupIntentResponse:
        """
        Start saving a payment method for an account with the payment provider.

        The provider's customer reference and setup intent ID are stored on
        the account.
        """
        account = self.get_account(db, tenant_id, credit_id=request.credit_id, for_update=True)
        if account.status == CreditAccountStatus.closed:
            raise InvalidInput("Credit account is closed")

        email = request.customer_email
        if email is None:
            customer = customer_crud.get(db=db, id=account.customer_id, tenant_id=tenant_id)
            email = customer.email if customer else None

        result = provider.create_setup_intent(
            customer_ref=account.payment_customer_ref,
            customer_email=email,
            metadata={
                "tenant_id": str(tenant_id),
                "credit_id": str(account.id),
                "customer_id": str(account.customer_id),
            }
        )

        self.accounts.update(
            db=db,
            db_obj=account,
            obj_in={"payment_customer_ref": result.customer_ref, "setup_intent_id": result.setup_intent_id}
        )
        logger.info(f"Setup intent created: credit_id={account.id}, setup_intent_id={result.setup_intent_id}")
        return SetupIntentResponse(setup_intent_id=result.setup_intent_id, client_secret=result.client_secret)

    def confirm_payment_method(
        self,
        db: Session,
        tenant_id: int,
        request: PaymentMethodConfirm,
        provider: PaymentProvider
    ) -> CreditAccount:
        """
        Record the payment method saved through the account's setup intent.

        Raises:
            InvalidInput: If no setup was started or the provider has not
                finished it
        """
        account = self.get_account(db, tenant_id, credit_id=request.credit_id, for_update=True)
        if not account.setup_intent_id:
            raise InvalidInput("No payment method setup was started for this credit account")

        intent = provider.get_setup_intent(account.setup_intent_id)
        if intent.status != "succeeded" or not intent.payment_method_ref:
            raise InvalidInput(f"Payment method setup is {intent.status}")

        account = self.accounts.update(db=db, db_obj=account, obj_in={"payment_method_ref": intent.payment_method_ref})
        logger.info(f"Payment method recorded: credit_id={account.id}, setup_intent_id={account.setup_intent_id}")
        return account


# Create singleton instance
credit_service = CreditService()
