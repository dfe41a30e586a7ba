import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from models.settlement import SettlementStatus
from services.errors import NotFoundError, ValidationError
from services.settlement_query_service import SettlementQueryService, normalize_paging
from services.settlement_request_service import SettlementRequestManager
from services.settlement_state_machine import SettlementStateMachine


@pytest.fixture
def queries(session):
    return SettlementQueryService(session)


@pytest.fixture
def seller_with_requests(session, policy, make_shop, make_order, fund_shop):
    """Three 50000 wallet requests, oldest first."""
    shop = make_shop()
    fund_shop(shop, 200000)
    make_order(shop, 200000)
    manager = SettlementRequestManager(session, policy)
    now = datetime.utcnow()
    settlements = [
        manager.create_request(shop.seller_id, 50000, 'wallet', now=now - timedelta(days=3 - i))
        for i in range(3)
    ]
    return shop, settlements


class TestBalances:

    def test_seller_balance_is_created_on_first_read(self, queries, make_shop):
        shop = make_shop()
        balance = queries.get_seller_balance(shop.seller_id)
        assert balance.shop_id == shop.id
        assert balance.available_balance == Decimal('0.00')

    def test_seller_without_shop(self, queries):
        with pytest.raises(NotFoundError):
            queries.get_seller_balance('ghost')

    def test_balance_by_shop(self, queries, make_shop, fund_shop):
        shop = make_shop()
        fund_shop(shop, 1234)
        assert queries.get_balance(shop.id).available_balance == Decimal('1234.00')


class TestSettlementLookup:

    def test_owner_sees_own_settlement(self, queries, seller_with_requests):
        shop, settlements = seller_with_requests
        found = queries.get_settlement(str(settlements[0].id), seller_id=shop.seller_id)
        assert found.id == settlements[0].id

    def test_other_seller_gets_not_found(self, queries, seller_with_requests):
        _, settlements = seller_with_requests
        with pytest.raises(NotFoundError):
            queries.get_settlement(settlements[0].id, seller_id='someone-else')

    def test_admin_lookup_ignores_owner(self, queries, seller_with_requests):
        _, settlements = seller_with_requests
        assert queries.get_settlement(settlements[1].id).id == settlements[1].id

    def test_missing_settlement(self, queries):
        with pytest.raises(NotFoundError):
            queries.get_settlement(uuid.uuid4())


class TestListing:

    def test_newest_first_with_paging(self, queries, seller_with_requests):
        shop, settlements = seller_with_requests

        page = queries.list_settlements(seller_id=shop.seller_id, page=1, page_size=2)

        assert page['total_count'] == 3
        assert [s.id for s in page['items']] == [settlements[2].id, settlements[1].id]
        second = queries.list_settlements(seller_id=shop.seller_id, page=2, page_size=2)
        assert [s.id for s in second['items']] == [settlements[0].id]

    def test_status_filter(self, session, policy, queries, seller_with_requests):
        shop, settlements = seller_with_requests
        SettlementStateMachine(session, policy).approve(settlements[0].id, 'admin-1')

        approved = queries.list_settlements(status='Approved')

        assert [s.id for s in approved['items']] == [settlements[0].id]

    def test_unknown_status_filter(self, queries):
        with pytest.raises(ValidationError):
            queries.list_settlements(status='failed')

    def test_date_filter(self, queries, seller_with_requests):
        shop, settlements = seller_with_requests
        since = datetime.utcnow() - timedelta(days=1, hours=12)

        recent = queries.list_settlements(seller_id=shop.seller_id, start_date=since)

        assert [s.id for s in recent['items']] == [settlements[2].id]

    def test_pending_queue_is_oldest_first(self, session, policy, queries, seller_with_requests):
        _, settlements = seller_with_requests
        SettlementStateMachine(session, policy).reject(settlements[1].id, 'admin-1', 'duplicate')

        pending = queries.list_pending_settlements()

        assert [s.id for s in pending] == [settlements[0].id, settlements[2].id]


class TestStatistics:

    def test_counts_and_completed_total(self, session, policy, queries, seller_with_requests):
        _, settlements = seller_with_requests
        machine = SettlementStateMachine(session, policy)
        machine.approve(settlements[0].id, 'admin-1')
        machine.process(settlements[0].id, 'admin-1', 'TX-1')
        machine.complete(settlements[0].id, 'admin-1')
        machine.reject(settlements[1].id, 'admin-1', 'duplicate')

        stats = queries.get_statistics()

        assert stats['settlements_by_status'] == {
            SettlementStatus.PENDING: 1,
            SettlementStatus.APPROVED: 0,
            SettlementStatus.PROCESSING: 0,
            SettlementStatus.COMPLETED: 1,
            SettlementStatus.CANCELLED: 1,
        }
        assert stats['total_settled_amount'] == Decimal('50000.00')

    def test_completed_total_respects_window(self, session, policy, queries, seller_with_requests):
        _, settlements = seller_with_requests
        machine = SettlementStateMachine(session, policy)
        machine.approve(settlements[0].id, 'admin-1')
        machine.process(settlements[0].id, 'admin-1', 'TX-1')
        machine.complete(settlements[0].id, 'admin-1')

        stats = queries.get_statistics(end_date=datetime.utcnow() - timedelta(days=1))

        assert stats['total_settled_amount'] == Decimal('0.00')


class TestNormalizePaging:

    @pytest.mark.parametrize("page, page_size, expected", [
        (None, None, (1, 20)),
        ('3', '10', (3, 10)),
        (0, 0, (1, 20)),
        (1, 500, (1, 100)),
    ])
    def test_bounds(self, page, page_size, expected):
        assert normalize_paging(page, page_size) == expected

    def test_non_numeric(self):
        with pytest.raises(ValidationError):
            normalize_paging('first', 10)
