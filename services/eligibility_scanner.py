from datetime import datetime, timedelta
from sqlalchemy import exists, func
from models.order import Order, ORDER_STATUS_DELIVERED, PAYMENT_STATUS_PAID
from models.orderSettlement import OrderSettlement
from models.settlement import Settlement, SettlementStatus
from services.settlement_calculator import to_money


class EligibilityScanner:
    """Finds delivered, paid, matured orders that no settlement has allocated yet."""

    def __init__(self, session):
        self.session = session

    def get_eligible_orders(self, shop_id, hold_period_days, now=None):
        """Oldest delivery first. Allocations of cancelled settlements still count as taken."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=hold_period_days)

        already_allocated = exists().where(OrderSettlement.order_id == Order.id)

        return (
            self.session.query(Order)
            .filter(
                Order.shop_id == shop_id,
                Order.status == ORDER_STATUS_DELIVERED,
                Order.payment_status == PAYMENT_STATUS_PAID,
                Order.delivered_at <= cutoff,
                ~already_allocated,
            )
            .order_by(Order.delivered_at.asc(), Order.id.asc())
            .all()
        )

    def is_order_allocated(self, order_id):
        return self.session.query(
            exists().where(OrderSettlement.order_id == order_id)
        ).scalar()

    def unused_allocation_credit(self, shop_id):
        """
        Allocated order value not yet claimed by a live withdrawal.

        Sum of every allocation made for the shop minus the requested amounts
        of its non-cancelled settlements. Grows when the greedy walk overshoots
        and when a settlement is cancelled.
        """
        allocated = (
            self.session.query(func.coalesce(func.sum(OrderSettlement.settlement_amount), 0))
            .join(Settlement, OrderSettlement.settlement_id == Settlement.id)
            .filter(Settlement.shop_id == shop_id)
            .scalar()
        )
        claimed = (
            self.session.query(func.coalesce(func.sum(Settlement.requested_amount), 0))
            .filter(
                Settlement.shop_id == shop_id,
                Settlement.status != SettlementStatus.CANCELLED,
            )
            .scalar()
        )
        credit = to_money(allocated) - to_money(claimed)
        return max(credit, to_money(0))
