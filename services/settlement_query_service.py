from sqlalchemy import func
from models.settlement import Settlement, SettlementStatus
from services.balance_ledger import BalanceLedger
from services.errors import NotFoundError, ValidationError
from services.settlement_calculator import to_money
from services.settlement_request_service import resolve_seller_shop
from services.settlement_state_machine import parse_settlement_id
from services.utils import run_in_transaction

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class SettlementQueryService:
    """Read side for sellers and administrators."""

    def __init__(self, session, ledger=None):
        self.session = session
        self.ledger = ledger or BalanceLedger(session)

    def get_balance(self, shop_id):
        return self.ledger.get_balance(shop_id)

    def get_seller_balance(self, seller_id):
        """Balance of the seller's shop, created on first access."""
        def work():
            shop = resolve_seller_shop(self.session, seller_id)
            return self.ledger.get_or_create(shop.id, seller_id)

        return run_in_transaction(self.session, work, operation=f"load balance for seller {seller_id}")

    def get_settlement(self, settlement_id, seller_id=None):
        settlement = self.session.get(Settlement, parse_settlement_id(settlement_id))
        # Sellers only see their own requests
        if settlement is None or (seller_id is not None and settlement.seller_id != seller_id):
            raise NotFoundError("Settlement", settlement_id)
        return settlement

    def list_settlements(self, seller_id=None, shop_id=None, status=None,
                         start_date=None, end_date=None, page=1, page_size=DEFAULT_PAGE_SIZE):
        page, page_size = normalize_paging(page, page_size)

        query = self.session.query(Settlement)
        if seller_id:
            query = query.filter(Settlement.seller_id == seller_id)
        if shop_id:
            query = query.filter(Settlement.shop_id == shop_id)
        if status:
            status = status.strip().lower()
            if status not in SettlementStatus.ALL:
                raise ValidationError(f"Unknown settlement status: {status}", field="status")
            query = query.filter(Settlement.status == status)
        if start_date:
            query = query.filter(Settlement.requested_at >= start_date)
        if end_date:
            query = query.filter(Settlement.requested_at <= end_date)

        total_count = query.count()
        items = (
            query.order_by(Settlement.requested_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            'items': items,
            'page': page,
            'page_size': page_size,
            'total_count': total_count,
        }

    def list_pending_settlements(self):
        return (
            self.session.query(Settlement)
            .filter(Settlement.status == SettlementStatus.PENDING)
            .order_by(Settlement.requested_at.asc())
            .all()
        )

    def get_statistics(self, start_date=None, end_date=None):
        rows = (
            self.session.query(Settlement.status, func.count(Settlement.id))
            .group_by(Settlement.status)
            .all()
        )
        by_status = {status: 0 for status in SettlementStatus.ALL}
        by_status.update({status: count for status, count in rows})

        settled = self.session.query(func.coalesce(func.sum(Settlement.requested_amount), 0)).filter(
            Settlement.status == SettlementStatus.COMPLETED
        )
        if start_date:
            settled = settled.filter(Settlement.completed_at >= start_date)
        if end_date:
            settled = settled.filter(Settlement.completed_at <= end_date)

        return {
            'settlements_by_status': by_status,
            'total_settled_amount': to_money(settled.scalar()),
            'start_date': start_date,
            'end_date': end_date,
        }


def normalize_paging(page, page_size):
    try:
        page = int(page) if page is not None else 1
        page_size = int(page_size) if page_size is not None else DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        raise ValidationError("Page and page size must be integers", field="page")
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    return page, min(page_size, MAX_PAGE_SIZE)
