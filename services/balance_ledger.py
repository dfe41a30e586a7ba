import logging
from datetime import datetime
from decimal import Decimal
from sqlalchemy.exc import IntegrityError
from models.sellerBalance import SellerBalance
from services.errors import (
    InsufficientBalanceError,
    InvalidLedgerStateError,
    NotFoundError,
    ValidationError,
)
from services.settlement_calculator import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


class BalanceLedger:
    """
    Moves money between the buckets of a shop's SellerBalance.

    Every method works inside the caller's open transaction on ``session`` and
    never commits. Mutations lock the balance row (SELECT ... FOR UPDATE) and
    flush immediately, so the row's version column is checked before the
    caller's transaction can go on.
    """

    def __init__(self, session):
        self.session = session

    def get_or_create(self, shop_id, seller_id):
        balance = self.session.query(SellerBalance).filter_by(shop_id=shop_id).one_or_none()
        if balance is not None:
            return balance

        try:
            with self.session.begin_nested():
                balance = SellerBalance(
                    shop_id=shop_id,
                    seller_id=seller_id,
                    available_balance=ZERO,
                    pending_balance=ZERO,
                    total_earned=ZERO,
                    total_withdrawn=ZERO,
                    total_pending_withdrawal=ZERO,
                )
                self.session.add(balance)
            logger.info(f"Created seller balance for shop {shop_id}")
        except IntegrityError:
            # Lost the race against another creator; unique(shop_id) kept it to one row
            balance = self.session.query(SellerBalance).filter_by(shop_id=shop_id).one()
        return balance

    def get_balance(self, shop_id):
        balance = self.session.query(SellerBalance).filter_by(shop_id=shop_id).one_or_none()
        if balance is None:
            raise NotFoundError("SellerBalance", shop_id, "Balance not found for this shop")
        return balance

    def lock_balance(self, shop_id):
        balance = (
            self.session.query(SellerBalance)
            .filter_by(shop_id=shop_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if balance is None:
            raise NotFoundError("SellerBalance", shop_id, "Balance not found for this shop")
        return balance

    def apply_earning(self, shop_id, amount, hold_elapsed):
        amount = self._amount(amount, allow_zero=True)
        balance = self.lock_balance(shop_id)

        balance.total_earned += amount
        if hold_elapsed:
            balance.available_balance += amount
        else:
            balance.pending_balance += amount
        self._touch(balance)

        logger.info(
            f"Earning applied: shop={shop_id} amount={amount} "
            f"bucket={'available' if hold_elapsed else 'pending'}"
        )
        return balance

    def release_hold(self, shop_id, amount):
        """Move matured proceeds from pending to available."""
        amount = self._amount(amount)
        balance = self.lock_balance(shop_id)

        if balance.pending_balance < amount:
            raise InvalidLedgerStateError(
                "Pending balance is lower than the amount to release",
                {'pending_balance': str(balance.pending_balance), 'amount': str(amount)},
            )
        balance.pending_balance -= amount
        balance.available_balance += amount
        self._touch(balance)

        logger.info(f"Hold released: shop={shop_id} amount={amount}")
        return balance

    def reserve_for_withdrawal(self, shop_id, amount):
        amount = self._amount(amount)
        balance = self.lock_balance(shop_id)

        # Check and debit under the same row lock
        if balance.available_balance < amount:
            raise InsufficientBalanceError(amount, balance.available_balance)
        balance.available_balance -= amount
        balance.total_pending_withdrawal += amount
        self._touch(balance)

        logger.info(f"Withdrawal reserved: shop={shop_id} amount={amount}")
        return balance

    def release_reservation(self, shop_id, amount):
        amount = self._amount(amount)
        balance = self.lock_balance(shop_id)

        if balance.total_pending_withdrawal < amount:
            raise InvalidLedgerStateError(
                "Reserved withdrawal total is lower than the amount to release",
                {'total_pending_withdrawal': str(balance.total_pending_withdrawal), 'amount': str(amount)},
            )
        balance.total_pending_withdrawal -= amount
        balance.available_balance += amount
        self._touch(balance)

        logger.info(f"Reservation released: shop={shop_id} amount={amount}")
        return balance

    def finalize_withdrawal(self, shop_id, amount):
        amount = self._amount(amount)
        balance = self.lock_balance(shop_id)

        if balance.total_pending_withdrawal < amount:
            raise InvalidLedgerStateError(
                "Reserved withdrawal total is lower than the amount to finalize",
                {'total_pending_withdrawal': str(balance.total_pending_withdrawal), 'amount': str(amount)},
            )
        balance.total_pending_withdrawal -= amount
        balance.total_withdrawn += amount
        self._touch(balance)

        logger.info(f"Withdrawal finalized: shop={shop_id} amount={amount}")
        return balance

    def _amount(self, amount, allow_zero=False):
        amount = to_money(amount)
        if amount < ZERO or (amount == ZERO and not allow_zero):
            raise ValidationError("Amount must be greater than zero", field="amount")
        return amount

    def _touch(self, balance):
        balance.updated_at = datetime.utcnow()
        self.session.flush()
