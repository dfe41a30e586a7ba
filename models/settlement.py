from datetime import datetime
import uuid
from decimal import Decimal
from db.extensions import db


class SettlementStatus:
    PENDING = 'pending'
    APPROVED = 'approved'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    ALL = (PENDING, APPROVED, PROCESSING, COMPLETED, CANCELLED)
    TERMINAL = (COMPLETED, CANCELLED)


class SettlementMethod:
    BANK_TRANSFER = 'bank_transfer'
    PAYOS = 'payos'
    WALLET = 'wallet'

    ALL = (BANK_TRANSFER, PAYOS, WALLET)

    @classmethod
    def parse(cls, value):
        """Accepts 'bank_transfer', 'BankTransfer', 'bank-transfer', ... Returns None if unknown."""
        if not isinstance(value, str):
            return None
        normalized = value.strip().replace('-', '_').replace(' ', '_')
        lowered = normalized.lower()
        if lowered in cls.ALL:
            return lowered
        compact = lowered.replace('_', '')
        for method in cls.ALL:
            if method.replace('_', '') == compact:
                return method
        return None


class Settlement(db.Model):
    """A seller withdrawal request."""
    __tablename__ = "settlements"
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = db.Column(db.String(450), nullable=False, index=True)
    shop_id = db.Column(db.Uuid, db.ForeignKey('shops.id'), nullable=False, index=True)

    requested_amount = db.Column(db.Numeric(18, 2), nullable=False)
    platform_fee = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal('0.00'))
    net_amount = db.Column(db.Numeric(18, 2), nullable=False)
    commission_percent = db.Column(db.Numeric(5, 2), nullable=False)

    status = db.Column(
        db.Enum(*SettlementStatus.ALL, name='settlement_status_enum'),
        nullable=False,
        default=SettlementStatus.PENDING,
        index=True,
    )
    method = db.Column(db.Enum(*SettlementMethod.ALL, name='settlement_method_enum'), nullable=False)

    # Bank details (bank_transfer only)
    bank_account = db.Column(db.String(50), nullable=True)
    bank_name = db.Column(db.String(100), nullable=True)
    account_holder_name = db.Column(db.String(100), nullable=True)

    transaction_reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    processed_by = db.Column(db.String(450), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    approved_at = db.Column(db.DateTime, nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    version = db.Column(db.Integer, nullable=False)

    allocations = db.relationship(
        'OrderSettlement',
        back_populates='settlement',
        order_by='OrderSettlement.order_delivered_at',
    )

    __table_args__ = (
        db.CheckConstraint('requested_amount > 0', name='check_requested_amount_positive'),
        db.Index('ix_settlements_seller_status', 'seller_id', 'status'),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self):
        return self.status in SettlementStatus.TERMINAL

    @property
    def bank_details(self):
        if not (self.bank_account or self.bank_name or self.account_holder_name):
            return None
        return {
            'bank_account': self.bank_account,
            'bank_name': self.bank_name,
            'account_holder_name': self.account_holder_name,
        }

    def to_dict(self, include_allocations=False):
        data = {
            'id': str(self.id),
            'seller_id': self.seller_id,
            'shop_id': str(self.shop_id),
            'requested_amount': str(self.requested_amount),
            'platform_fee': str(self.platform_fee),
            'net_amount': str(self.net_amount),
            'commission_percent': str(self.commission_percent),
            'status': self.status,
            'method': self.method,
            'bank_details': self.bank_details,
            'transaction_reference': self.transaction_reference,
            'notes': self.notes,
            'processed_by': self.processed_by,
            'failure_reason': self.failure_reason,
            'requested_at': self.requested_at.isoformat() if self.requested_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_allocations:
            data['allocations'] = [a.to_dict() for a in self.allocations]
        return data

    def __repr__(self):
        return f"<Settlement id={self.id} shop={self.shop_id} amount={self.requested_amount} status={self.status}>"
