from datetime import datetime
import uuid
from sqlalchemy import func
from sqlalchemy.ext.hybrid import hybrid_property
from db.extensions import db

ORDER_STATUSES = ('pending', 'confirmed', 'shipped', 'delivered', 'cancelled')
PAYMENT_STATUSES = ('unpaid', 'paid', 'refunded')

ORDER_STATUS_DELIVERED = 'delivered'
PAYMENT_STATUS_PAID = 'paid'


class Order(db.Model):
    """Customer order. Owned by the ordering service; read-only here."""
    __tablename__ = "orders"
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    shop_id = db.Column(db.Uuid, db.ForeignKey('shops.id'), nullable=False, index=True)
    total_amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.Enum(*ORDER_STATUSES, name='order_status_enum'), default='pending')
    payment_status = db.Column(db.Enum(*PAYMENT_STATUSES, name='payment_status_enum'), default='unpaid')
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=True)
    shop = db.relationship('Shop')

    # The ordering service stamps updated_at when the order reaches delivered
    @hybrid_property
    def delivered_at(self):
        return self.updated_at or self.created_at

    @delivered_at.expression
    def delivered_at(cls):
        return func.coalesce(cls.updated_at, cls.created_at)

    def __repr__(self):
        return f"<Order id={self.id} shop={self.shop_id} total={self.total_amount} status={self.status}>"
