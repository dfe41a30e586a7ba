from datetime import datetime
import uuid
from db.extensions import db


class OrderSettlement(db.Model):
    """Allocation of one order to one settlement. Append-only."""
    __tablename__ = "order_settlements"
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid, db.ForeignKey('orders.id'), nullable=False, unique=True)
    settlement_id = db.Column(db.Uuid, db.ForeignKey('settlements.id'), nullable=False, index=True)
    order_amount = db.Column(db.Numeric(18, 2), nullable=False)
    commission = db.Column(db.Numeric(18, 2), nullable=False)
    commission_percent = db.Column(db.Numeric(5, 2), nullable=False)
    settlement_amount = db.Column(db.Numeric(18, 2), nullable=False)
    order_delivered_at = db.Column(db.DateTime, nullable=True)
    eligible_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    settlement = db.relationship('Settlement', back_populates='allocations')

    def to_dict(self):
        return {
            'id': str(self.id),
            'order_id': str(self.order_id),
            'settlement_id': str(self.settlement_id),
            'order_amount': str(self.order_amount),
            'commission': str(self.commission),
            'commission_percent': str(self.commission_percent),
            'settlement_amount': str(self.settlement_amount),
            'order_delivered_at': self.order_delivered_at.isoformat() if self.order_delivered_at else None,
            'eligible_at': self.eligible_at.isoformat() if self.eligible_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
