import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from models.earningCredit import EarningCredit
from models.order import Order, ORDER_STATUS_DELIVERED, PAYMENT_STATUS_PAID
from models.shop import Shop
from services.balance_ledger import BalanceLedger
from services.eligibility_scanner import EligibilityScanner
from services.errors import (
    AlreadySettledError,
    NotFoundError,
    PreconditionFailedError,
    SettlementError,
    ValidationError,
)
from services.settlement_calculator import compute, to_money
from services.utils import run_in_transaction

logger = logging.getLogger(__name__)


class EarningService:
    """Credits delivered orders to their shop's balance and matures held proceeds."""

    def __init__(self, session, policy, ledger=None, scanner=None):
        self.session = session
        self.policy = policy
        self.ledger = ledger or BalanceLedger(session)
        self.scanner = scanner or EligibilityScanner(session)

    def calculate_settlement_for_order(self, order_id, now=None):
        """
        Handle the "order delivered" event for one order.

        The order's net proceeds (total minus commission at the current rate)
        go to available_balance when its hold period is already over, and to
        pending_balance otherwise. Each order is credited at most once.
        """
        if not isinstance(order_id, uuid.UUID):
            try:
                order_id = uuid.UUID(str(order_id))
            except (TypeError, ValueError):
                raise ValidationError("Invalid order id", field="order_id")

        def work():
            return self._credit_order(order_id, now or datetime.utcnow())

        credit = run_in_transaction(
            self.session,
            work,
            retry_limit=self.policy.retry_limit,
            backoff_seconds=self.policy.retry_backoff_seconds,
            operation=f"calculate settlement for order {order_id}",
        )
        logger.info(
            f"Settlement calculated for order {order_id}: commission={credit.commission} "
            f"amount={credit.amount} held={credit.released_at is None}"
        )
        return credit

    def _credit_order(self, order_id, now):
        order = self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if order.status != ORDER_STATUS_DELIVERED or order.payment_status != PAYMENT_STATUS_PAID:
            raise PreconditionFailedError("Only delivered and paid orders can be settled")

        already_credited = self.session.query(EarningCredit.id).filter_by(order_id=order_id).first()
        if already_credited is not None or self.scanner.is_order_allocated(order_id):
            raise AlreadySettledError("This order has already been settled")

        shop = self.session.get(Shop, order.shop_id)
        if shop is None:
            raise NotFoundError("Shop", order.shop_id)

        percent = self.policy.commission_percent
        split = compute(order.total_amount, percent)
        available_at = order.delivered_at + timedelta(days=self.policy.hold_period_days)
        hold_elapsed = now >= available_at

        # Inserted first so a concurrent duplicate fails on unique(order_id)
        credit = EarningCredit(
            order_id=order.id,
            shop_id=shop.id,
            order_amount=to_money(order.total_amount),
            commission=split.commission,
            commission_percent=percent,
            amount=split.settlement_amount,
            credited_at=now,
            available_at=available_at,
            released_at=now if hold_elapsed else None,
        )
        self.session.add(credit)
        self.session.flush()

        self.ledger.get_or_create(shop.id, shop.seller_id)
        self.ledger.apply_earning(shop.id, split.settlement_amount, hold_elapsed)
        return credit

    def release_matured_earnings(self, now=None):
        """Move every credit whose hold has ended from pending to available. One transaction per shop."""
        now = now or datetime.utcnow()
        shop_ids = [
            row[0] for row in (
                self.session.query(EarningCredit.shop_id)
                .filter(EarningCredit.released_at.is_(None), EarningCredit.available_at <= now)
                .distinct()
                .all()
            )
        ]

        summary = {'shops': 0, 'credits': 0, 'amount': Decimal('0.00'), 'failed_shops': []}
        for shop_id in shop_ids:
            try:
                count, amount = run_in_transaction(
                    self.session,
                    lambda shop_id=shop_id: self._release_shop(shop_id, now),
                    retry_limit=self.policy.retry_limit,
                    backoff_seconds=self.policy.retry_backoff_seconds,
                    operation=f"release holds for shop {shop_id}",
                )
            except SettlementError:
                # One bad shop must not block the others
                logger.exception(f"HOLD_RELEASE_ERROR shop={shop_id}")
                summary['failed_shops'].append(str(shop_id))
                continue
            summary['shops'] += 1
            summary['credits'] += count
            summary['amount'] += amount

        logger.info(
            f"Hold release finished: shops={summary['shops']} credits={summary['credits']} "
            f"amount={summary['amount']} failed={len(summary['failed_shops'])}"
        )
        return summary

    def _release_shop(self, shop_id, now):
        self.ledger.lock_balance(shop_id)
        credits = (
            self.session.query(EarningCredit)
            .filter(
                EarningCredit.shop_id == shop_id,
                EarningCredit.released_at.is_(None),
                EarningCredit.available_at <= now,
            )
            .with_for_update()
            .all()
        )
        total = sum((to_money(c.amount) for c in credits), Decimal('0.00'))
        for credit in credits:
            credit.released_at = now
        if total > 0:
            self.ledger.release_hold(shop_id, total)
        self.session.flush()
        return len(credits), total
