import pytest

from db.extensions import mail
from services.settlement_notification import SettlementNotificationService
from services.settlement_request_service import SettlementRequestManager
from services.settlement_state_machine import SettlementStateMachine


@pytest.fixture
def notified_request(session, policy, make_shop, make_order, fund_shop):
    def _build(contact_email="owner@shop.test"):
        shop = make_shop(name="Corner Shop", contact_email=contact_email)
        fund_shop(shop, 100000)
        make_order(shop, 100000)
        settlement = SettlementRequestManager(session, policy).create_request(shop.seller_id, 60000, 'wallet')
        machine = SettlementStateMachine(
            session, policy, notifier=SettlementNotificationService(session)
        )
        return settlement, machine

    return _build


class TestSettlementNotifications:

    def test_approval_mails_shop_contact(self, notified_request):
        settlement, machine = notified_request()

        with mail.record_messages() as outbox:
            machine.approve(settlement.id, 'admin-1')

        assert len(outbox) == 1
        assert outbox[0].recipients == ["owner@shop.test"]
        assert outbox[0].subject == "Your withdrawal request was approved"
        assert str(settlement.id) in outbox[0].body

    def test_rejection_mail_carries_reason(self, notified_request):
        settlement, machine = notified_request()

        with mail.record_messages() as outbox:
            machine.reject(settlement.id, 'admin-1', 'bank info invalid')

        assert "Reason: bank info invalid" in outbox[0].body

    def test_processing_mail_carries_reference(self, notified_request):
        settlement, machine = notified_request()
        machine.approve(settlement.id, 'admin-1')

        with mail.record_messages() as outbox:
            machine.process(settlement.id, 'admin-1', 'TX-777')

        assert "Transaction reference: TX-777" in outbox[0].body

    def test_shop_without_contact_gets_nothing(self, notified_request):
        settlement, machine = notified_request(contact_email=None)

        with mail.record_messages() as outbox:
            machine.approve(settlement.id, 'admin-1')

        assert outbox == []

    def test_disabled_by_config(self, app, notified_request):
        settlement, machine = notified_request()
        app.config['SETTLEMENT_NOTIFICATIONS_ENABLED'] = False

        with mail.record_messages() as outbox:
            approved = machine.approve(settlement.id, 'admin-1')

        assert outbox == []
        assert approved.status == 'approved'
