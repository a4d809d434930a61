import calendar
from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from crm.crud import customer as customer_crud
from crm.crud import loyalty as loyalty_crud
from crm.crud import loyalty_program as loyalty_program_crud
from crm.crud import order as order_crud
from crm.core.exceptions import Conflict, InvalidInput, NotFound
from crm.core.logging_config import logger
from crm.models.loyalty import LoyaltyAccount, LoyaltyProgram, LoyaltyTransaction, LoyaltyTransactionType
from crm.models.order import OrderStatus
from crm.schemas.common import BIGINT_MAX
from crm.schemas.loyalty import (
    LoyaltyAccountResponse,
    LoyaltyAccrueRequest,
    LoyaltyAdjustRequest,
    LoyaltyBalanceResponse,
    LoyaltyPointsRequest,
    LoyaltyProgramCreate,
    LoyaltyProgramUpdate,
    LoyaltyTransactionResponse,
)

RECENT_TRANSACTIONS = 10


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they were written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(start: datetime, months: int) -> datetime:
    """Same day ``months`` later, pulled back to the last day of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def derive_balance(transactions: Iterable[LoyaltyTransaction], now: datetime) -> int:
    """
    Spendable points at ``now``.

    Credited rows form lots; debits consume the lots that were still valid
    when the debit was made, soonest-expiring first. Whatever is left of a
    lot once it expires no longer counts.
    """
    lots = []  # [expires_at, remaining]
    for transaction in sorted(transactions, key=lambda t: t.id):
        if transaction.points > 0:
            lots.append([_as_utc(transaction.expires_at), transaction.points])
            continue

        owed = -transaction.points
        made_at = _as_utc(transaction.created_at) or now
        valid = [lot for lot in lots if lot[1] > 0 and (lot[0] is None or lot[0] > made_at)]
        # Lots without expiry go last
        valid.sort(key=lambda lot: (lot[0] is None, lot[0] or made_at))
        for lot in valid:
            taken = min(lot[1], owed)
            lot[1] -= taken
            owed -= taken
            if owed == 0:
                break

    return sum(remaining for expires_at, remaining in lots if expires_at is None or expires_at > now)


class LoyaltyService:
    """
    Service layer for loyalty programs and points.

    A customer holds one account per program, plus an optional account
    outside any program. A balance is derived from the account's
    transactions and never goes below zero: debits are checked against it
    while the account row is locked. Points credited under a program with
    ``expiration_months`` stop counting once they expire.
    """

    def __init__(self):
        self.crud = loyalty_crud
        self.programs = loyalty_program_crud

    # Programs

    def get_program(self, db: Session, program_id: int, tenant_id: int) -> LoyaltyProgram:
        program = self.programs.get(db=db, id=program_id, tenant_id=tenant_id)
        if not program:
            raise NotFound("Loyalty program not found")
        return program

    def get_programs(
        self,
        db: Session,
        tenant_id: int,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[LoyaltyProgram]:
        return self.programs.get_filtered(db=db, tenant_id=tenant_id, is_active=is_active, skip=skip, limit=limit)

    def create_program(
        self,
        db: Session,
        tenant_id: int,
        program_data: LoyaltyProgramCreate,
        user_id: str
    ) -> LoyaltyProgram:
        program = self.programs.create(
            db=db,
            obj_in={**program_data.model_dump(), "created_by": user_id},
            tenant_id=tenant_id
        )
        logger.info(f"Loyalty program created: id={program.id}, tenant_id={tenant_id}")
        return program

    def update_program(
        self,
        db: Session,
        program_id: int,
        program_data: LoyaltyProgramUpdate,
        tenant_id: int
    ) -> LoyaltyProgram:
        program = self.get_program(db, program_id, tenant_id)
        return self.programs.update(db=db, db_obj=program, obj_in=program_data)

    def delete_program(self, db: Session, program_id: int, tenant_id: int) -> None:
        """
        Raises:
            NotFound: If the program is not in the tenant
            Conflict: If customers are enrolled; deactivate it instead
        """
        self.get_program(db, program_id, tenant_id)
        if self.programs.count_accounts(db=db, program_id=program_id, tenant_id=tenant_id):
            raise Conflict("Loyalty program has accounts; deactivate it instead")
        self.programs.delete(db=db, id=program_id, tenant_id=tenant_id)
        logger.info(f"Loyalty program deleted: id={program_id}, tenant_id={tenant_id}")

    # Balances

    def _balance(self, db: Session, account: LoyaltyAccount) -> int:
        transactions = self.crud.get_transactions(db=db, account_id=account.id, tenant_id=account.tenant_id)
        return derive_balance(transactions, datetime.now(timezone.utc))

    def get_balances(self, db: Session, tenant_id: int) -> List[LoyaltyBalanceResponse]:
        by_account = defaultdict(list)
        for transaction in self.crud.get_tenant_transactions(db=db, tenant_id=tenant_id):
            by_account[transaction.account_id].append(transaction)

        now = datetime.now(timezone.utc)
        return [
            LoyaltyBalanceResponse(
                customer_id=account.customer_id,
                program_id=account.program_id,
                balance=derive_balance(by_account[account.id], now)
            )
            for account in self.crud.get_accounts(db=db, tenant_id=tenant_id)
        ]

    def get_account(
        self,
        db: Session,
        customer_id: int,
        tenant_id: int,
        program_id: Optional[int] = None
    ) -> LoyaltyAccountResponse:
        account = self.crud.get_account(db=db, customer_id=customer_id, tenant_id=tenant_id, program_id=program_id)
        if not account:
            raise NotFound("Loyalty account not found")

        recent = self.crud.get_recent_transactions(
            db=db, account_id=account.id, tenant_id=tenant_id, limit=RECENT_TRANSACTIONS
        )
        return LoyaltyAccountResponse(
            customer_id=customer_id,
            program_id=account.program_id,
            balance=self._balance(db, account),
            recent_transactions=[LoyaltyTransactionResponse.model_validate(t) for t in recent],
        )

    # Ledger

    def _get_or_create_account(
        self,
        db: Session,
        customer_id: int,
        tenant_id: int,
        program_id: Optional[int]
    ) -> LoyaltyAccount:
        account = self.crud.get_account(
            db=db, customer_id=customer_id, tenant_id=tenant_id, program_id=program_id, for_update=True
        )
        if account:
            return account

        if not customer_crud.get(db=db, id=customer_id, tenant_id=tenant_id):
            raise NotFound("Customer not found")

        try:
            account = self.crud.create_account(
                db=db, customer_id=customer_id, tenant_id=tenant_id, program_id=program_id
            )
        except IntegrityError:
            # Created concurrently; nothing else has been written yet
            db.rollback()
            account = self.crud.get_account(
                db=db, customer_id=customer_id, tenant_id=tenant_id, program_id=program_id, for_update=True
            )
        return account

    def _expiry(self, program: Optional[LoyaltyProgram]) -> Optional[datetime]:
        if program is None or not program.expiration_months:
            return None
        return add_months(datetime.now(timezone.utc), program.expiration_months)

    def _order_points(
        self,
        db: Session,
        tenant_id: int,
        request: LoyaltyAccrueRequest,
        program: Optional[LoyaltyProgram]
    ) -> int:
        order = order_crud.get(db=db, id=request.order_id, tenant_id=tenant_id)
        if not order:
            raise NotFound("Order not found")
        if order.customer_id != request.customer_id:
            raise InvalidInput("Order belongs to another customer")
        if order.status == OrderStatus.cancelled:
            raise InvalidInput("Cannot accrue points for a cancelled order")

        if request.points is not None:
            return request.points
        rate = program.points_per_dollar if program else 1
        points = order.total_cents // 100 * rate
        if points <= 0:
            raise InvalidInput("Order total earns no points")
        return points

    def _credit(
        self,
        db: Session,
        account: LoyaltyAccount,
        transaction_type: LoyaltyTransactionType,
        points: int,
        program: Optional[LoyaltyProgram],
        description: Optional[str] = None,
        order_id: Optional[int] = None
    ) -> int:
        balance = self._balance(db, account)
        if balance + points > BIGINT_MAX:
            raise InvalidInput("Points would take the balance out of range")
        self.crud.add_transaction(
            db=db,
            account=account,
            type=transaction_type,
            points=points,
            description=description,
            order_id=order_id,
            expires_at=self._expiry(program)
        )
        return balance + points

    def accrue(self, db: Session, tenant_id: int, request: LoyaltyAccrueRequest) -> LoyaltyBalanceResponse:
        """
        Add points to a customer's account, opening the account if needed.

        With an orderId the points are tied to that order, and default to
        the order total in whole dollars times the program's
        points_per_dollar. An order earns points once per account.

        Raises:
            NotFound: If the customer, program or order does not exist in the tenant
            InvalidInput: If the program is inactive or the order cannot earn points
            Conflict: If points were already accrued for the order
        """
        program = self.get_program(db, request.program_id, tenant_id) if request.program_id else None
        if program is not None and not program.is_active:
            raise InvalidInput("Loyalty program is not active")

        points = request.points
        if request.order_id is not None:
            points = self._order_points(db, tenant_id, request, program)

        account = self._get_or_create_account(db, request.customer_id, tenant_id, request.program_id)
        if request.order_id is not None and self.crud.get_order_accrual(
            db=db, account_id=account.id, order_id=request.order_id
        ):
            raise Conflict("Points were already accrued for this order")

        balance = self._credit(
            db, account, LoyaltyTransactionType.accrual, points, program,
            description=request.description, order_id=request.order_id
        )
        db.commit()

        logger.info(
            f"Loyalty points accrued: customer_id={request.customer_id}, program_id={request.program_id}, "
            f"points={points}, order_id={request.order_id}"
        )
        return LoyaltyBalanceResponse(customer_id=request.customer_id, program_id=request.program_id, balance=balance)

    def _debit(
        self,
        db: Session,
        account: LoyaltyAccount,
        transaction_type: LoyaltyTransactionType,
        points: int,
        description: Optional[str] = None
    ) -> int:
        balance = self._balance(db, account)
        if points > balance:
            raise InvalidInput("Insufficient points")
        self.crud.add_transaction(
            db=db,
            account=account,
            type=transaction_type,
            points=-points,
            description=description
        )
        return balance - points

    def redeem(self, db: Session, tenant_id: int, request: LoyaltyPointsRequest) -> LoyaltyBalanceResponse:
        """
        Spend points from a customer's account.

        Raises:
            NotFound: If the customer has no loyalty account
            InvalidInput: If fewer points than the program minimum are
                requested, or the balance is lower than the points requested
        """
        program = self.get_program(db, request.program_id, tenant_id) if request.program_id else None
        if program is not None and request.points < program.minimum_redemption:
            raise InvalidInput(f"Minimum redemption is {program.minimum_redemption} points")

        account = self.crud.get_account(
            db=db, customer_id=request.customer_id, tenant_id=tenant_id,
            program_id=request.program_id, for_update=True
        )
        if not account:
            raise NotFound("Loyalty account not found")

        balance = self._debit(db, account, LoyaltyTransactionType.redemption, request.points, request.description)
        db.commit()

        logger.info(f"Loyalty points redeemed: customer_id={request.customer_id}, points={request.points}")
        return LoyaltyBalanceResponse(customer_id=request.customer_id, program_id=request.program_id, balance=balance)

    def adjust(self, db: Session, tenant_id: int, request: LoyaltyAdjustRequest) -> LoyaltyBalanceResponse:
        """
        Correct a balance by a signed number of points.

        Positive adjustments expire like accruals; negative ones cannot take
        the balance below zero.

        Raises:
            NotFound: If the customer, program or account does not exist in the tenant
            InvalidInput: If points is zero or the balance is too low
        """
        if request.points == 0:
            raise InvalidInput("Adjustment points must not be zero")
        program = self.get_program(db, request.program_id, tenant_id) if request.program_id else None

        if request.points > 0:
            account = self._get_or_create_account(db, request.customer_id, tenant_id, request.program_id)
            balance = self._credit(
                db, account, LoyaltyTransactionType.adjustment, request.points, program,
                description=request.description
            )
        else:
            account = self.crud.get_account(
                db=db, customer_id=request.customer_id, tenant_id=tenant_id,
                program_id=request.program_id, for_update=True
            )
            if not account:
                raise NotFound("Loyalty account not found")
            balance = self._debit(
                db, account, LoyaltyTransactionType.adjustment, -request.points, request.description
            )
        db.commit()

        logger.info(f"Loyalty points adjusted: customer_id={request.customer_id}, points={request.points}")
        return LoyaltyBalanceResponse(customer_id=request.customer_id, program_id=request.program_id, balance=balance)


# Create singleton instance
loyalty_service = LoyaltyService()
