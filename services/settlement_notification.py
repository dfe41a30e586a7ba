from flask import current_app
from models.settlement import SettlementStatus
from models.shop import Shop
from services.utils import send_email

SUBJECTS = {
    SettlementStatus.APPROVED: "Your withdrawal request was approved",
    SettlementStatus.PROCESSING: "Your withdrawal is being paid out",
    SettlementStatus.COMPLETED: "Your withdrawal has been paid",
    SettlementStatus.CANCELLED: "Your withdrawal request was rejected",
}


class SettlementNotificationService:

    def __init__(self, session):
        self.session = session

    def notify_status_change(self, settlement):
        """E-mail the shop contact about a committed transition. Never raises."""
        if not current_app.config.get('SETTLEMENT_NOTIFICATIONS_ENABLED', True):
            return False
        subject = SUBJECTS.get(settlement.status)
        if subject is None:
            return False

        try:
            shop = self.session.get(Shop, settlement.shop_id)
        except Exception as e:
            current_app.logger.error(f"❌ Could not load shop for settlement {settlement.id}: {str(e)}")
            return False
        if shop is None or not shop.contact_email:
            current_app.logger.info(f"No contact e-mail for shop {settlement.shop_id}, skipping notification")
            return False

        lines = [
            f"Hello {shop.name},",
            "",
            f"Settlement ID: {settlement.id}",
            f"Requested amount: {settlement.requested_amount:,.2f}",
            f"Platform fee: {settlement.platform_fee:,.2f}",
            f"Net amount: {settlement.net_amount:,.2f}",
            f"Status: {settlement.status.capitalize()}",
        ]
        if settlement.transaction_reference:
            lines.append(f"Transaction reference: {settlement.transaction_reference}")
        if settlement.status == SettlementStatus.CANCELLED and settlement.failure_reason:
            lines.append(f"Reason: {settlement.failure_reason}")
            lines.append("The reserved amount is available for withdrawal again.")
        lines += ["", "This is an automated message."]

        return send_email(subject, [shop.contact_email], "\n".join(lines))
