from datetime import datetime
import uuid
from decimal import Decimal
from db.extensions import db


class SellerBalance(db.Model):
    """
    Per-shop money buckets.

    available + pending + total_pending_withdrawal + total_withdrawn == total_earned
    """
    __tablename__ = "seller_balances"
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    shop_id = db.Column(db.Uuid, db.ForeignKey('shops.id'), nullable=False, unique=True)
    seller_id = db.Column(db.String(450), nullable=False, index=True)
    available_balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal('0.00'))
    pending_balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal('0.00'))
    total_earned = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal('0.00'))
    total_withdrawn = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal('0.00'))
    total_pending_withdrawal = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal('0.00'))
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('available_balance >= 0', name='check_available_balance_non_negative'),
        db.CheckConstraint('pending_balance >= 0', name='check_pending_balance_non_negative'),
        db.CheckConstraint('total_earned >= 0', name='check_total_earned_non_negative'),
        db.CheckConstraint('total_withdrawn >= 0', name='check_total_withdrawn_non_negative'),
        db.CheckConstraint('total_pending_withdrawal >= 0', name='check_pending_withdrawal_non_negative'),
    )
    __mapper_args__ = {"version_id_col": version}

    def is_conserved(self):
        return (
            self.available_balance + self.pending_balance
            + self.total_pending_withdrawal + self.total_withdrawn
        ) == self.total_earned

    def to_dict(self):
        return {
            'id': str(self.id),
            'shop_id': str(self.shop_id),
            'seller_id': self.seller_id,
            'available_balance': str(self.available_balance),
            'pending_balance': str(self.pending_balance),
            'total_earned': str(self.total_earned),
            'total_withdrawn': str(self.total_withdrawn),
            'total_pending_withdrawal': str(self.total_pending_withdrawal),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return (
            f"<SellerBalance shop={self.shop_id} available={self.available_balance} "
            f"pending={self.pending_balance} earned={self.total_earned}>"
        )
