from datetime import datetime
import uuid
from db.extensions import db


class EarningCredit(db.Model):
    """Record of an order's proceeds credited to its shop balance."""
    __tablename__ = "earning_credits"
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid, db.ForeignKey('orders.id'), nullable=False, unique=True)
    shop_id = db.Column(db.Uuid, db.ForeignKey('shops.id'), nullable=False, index=True)
    order_amount = db.Column(db.Numeric(18, 2), nullable=False)
    commission = db.Column(db.Numeric(18, 2), nullable=False)
    commission_percent = db.Column(db.Numeric(5, 2), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    credited_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    available_at = db.Column(db.DateTime, nullable=False, index=True)
    # Null while the amount still sits in pending_balance
    released_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<EarningCredit order={self.order_id} amount={self.amount} released={self.released_at}>"
