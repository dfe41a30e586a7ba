"""
Shared pytest fixtures.

Every test gets a fresh application bound to an in-memory SQLite database,
plus factories for the external shop and order rows the settlement core reads.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import event

from app import create_app
from app.config import TestConfig
from db.extensions import db as _db
from models.order import Order
from models.orderSettlement import OrderSettlement
from models.settlement import Settlement, SettlementMethod, SettlementStatus
from models.shop import Shop
from services.balance_ledger import BalanceLedger
from services.settlement_policy import SettlementPolicy


def _enable_sqlite_savepoints(engine):
    """pysqlite needs explicit BEGIN handling for SAVEPOINT to behave."""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _enable_sqlite_savepoints(_db.engine)
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return _db.session


@pytest.fixture
def policy():
    """10% commission keeps the arithmetic in the tests readable."""
    return SettlementPolicy(
        commission_percent=Decimal('10'),
        min_settlement_amount=Decimal('50000.00'),
        hold_period_days=3,
        retry_limit=3,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def ledger(session):
    return BalanceLedger(session)


@pytest.fixture
def make_shop(session):
    def _make_shop(seller_id=None, name="Test Shop", contact_email=None):
        shop = Shop(
            seller_id=seller_id or f"seller-{uuid.uuid4().hex[:8]}",
            name=name,
            contact_email=contact_email,
        )
        session.add(shop)
        session.commit()
        return shop

    return _make_shop


@pytest.fixture
def make_order(session):
    def _make_order(shop, total, status='delivered', payment_status='paid',
                    delivered_days_ago=10, stamp_updated_at=True):
        delivered = datetime.utcnow() - timedelta(days=delivered_days_ago)
        order = Order(
            shop_id=shop.id,
            total_amount=Decimal(str(total)),
            status=status,
            payment_status=payment_status,
            created_at=delivered,
            updated_at=delivered if stamp_updated_at else None,
        )
        session.add(order)
        session.commit()
        return order

    return _make_order


@pytest.fixture
def fund_shop(session, ledger):
    """Credit ``amount`` straight to the shop's available balance."""
    def _fund_shop(shop, amount, hold_elapsed=True):
        ledger.get_or_create(shop.id, shop.seller_id)
        ledger.apply_earning(shop.id, Decimal(str(amount)), hold_elapsed)
        session.commit()
        return ledger.get_balance(shop.id)

    return _fund_shop


@pytest.fixture
def allocate(session):
    """Attach ``order`` to a bare settlement row in ``status``."""
    def _allocate(shop, order, status=SettlementStatus.PENDING, amount=Decimal('1000.00')):
        settlement = Settlement(
            seller_id=shop.seller_id,
            shop_id=shop.id,
            requested_amount=amount,
            platform_fee=Decimal('0.00'),
            net_amount=amount,
            commission_percent=Decimal('10'),
            status=status,
            method=SettlementMethod.WALLET,
        )
        session.add(settlement)
        session.flush()
        session.add(OrderSettlement(
            order_id=order.id,
            settlement_id=settlement.id,
            order_amount=order.total_amount,
            commission=Decimal('0.00'),
            commission_percent=Decimal('10'),
            settlement_amount=order.total_amount,
        ))
        session.commit()
        return settlement

    return _allocate


@pytest.fixture
def bank_details():
    return {
        'bank_account': '0123456789',
        'bank_name': 'Vietcombank',
        'account_holder_name': 'NGUYEN VAN A',
    }
