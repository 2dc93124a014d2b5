from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Enum

from extensions import db
from bakery.utils.helpers import to_float, iso
from bakery.utils.numbering import next_document_number


class PaymentMethod(PyEnum):
    CASH = 'cash'
    BANK_TRANSFER = 'bank_transfer'
    CHECK = 'check'
    CREDIT_CARD = 'credit_card'
    MOBILE_PAYMENT = 'mobile_payment'


class PaymentType(PyEnum):
    FULL = 'full'
    PARTIAL = 'partial'
    REFUND = 'refund'


class PaymentStatus(PyEnum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


class VerificationStatus(PyEnum):
    PENDING = 'pending'
    VERIFIED = 'verified'
    REJECTED = 'rejected'


PAYMENT_CURRENCIES = ('EUR', 'SYP', 'MIXED')


class Payment(db.Model):
    """Money collected from (or refunded to) a store"""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(50), unique=True, nullable=False)

    store_id = db.Column(db.Integer, db.ForeignKey('stores.id'), nullable=False, index=True)
    store_name = db.Column(db.String(100), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), index=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    visit_id = db.Column(db.Integer, db.ForeignKey('store_visits.id'))

    # Amounts
    amount_eur = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_syp = db.Column(db.Numeric(20, 2), nullable=False, default=0)
    exchange_rate = db.Column(db.Numeric(12, 4), nullable=False)
    currency = db.Column(db.Enum(*PAYMENT_CURRENCIES, name='payment_currencies'), nullable=False, default='EUR')

    payment_method = db.Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    payment_type = db.Column(Enum(PaymentType), nullable=False, default=PaymentType.FULL)
    payment_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date(), index=True)
    payment_reference = db.Column(db.String(100))
    notes = db.Column(db.Text)

    status = db.Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    completed_at = db.Column(db.DateTime)
    verification_status = db.Column(Enum(VerificationStatus), nullable=False, default=VerificationStatus.PENDING)
    verified_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    verified_at = db.Column(db.DateTime)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_by_name = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    distributor = db.relationship('User', foreign_keys=[distributor_id])

    STATUS_FLOW = {
        PaymentStatus.PENDING: [PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED],
        PaymentStatus.COMPLETED: [PaymentStatus.REFUNDED, PaymentStatus.CANCELLED],
        PaymentStatus.FAILED: [],
        PaymentStatus.CANCELLED: [],
        PaymentStatus.REFUNDED: []
    }

    @classmethod
    def generate_payment_number(cls):
        """PAY-YYYYMMDD-NNNN, numbered per day"""
        return next_document_number(cls, cls.payment_number, 'PAY')

    def value_in_eur(self):
        """EUR equivalent of both currency parts; refunds count negatively"""
        amount = Decimal(str(self.amount_eur or 0))
        rate = Decimal(str(self.exchange_rate or 0))
        if self.amount_syp and rate > 0:
            amount += Decimal(str(self.amount_syp)) / rate
        amount = amount.quantize(Decimal('0.01'))
        if self.payment_type == PaymentType.REFUND:
            return -amount
        return amount

    def is_completed(self):
        return self.status == PaymentStatus.COMPLETED

    def can_edit(self):
        return self.status == PaymentStatus.PENDING

    def can_delete(self):
        return self.status in (PaymentStatus.PENDING, PaymentStatus.CANCELLED)

    def can_transition_to(self, new_status):
        return new_status in self.STATUS_FLOW.get(self.status, [])

    def to_dict(self):
        """Convert payment to dictionary"""
        return {
            'id': self.id,
            'payment_number': self.payment_number,
            'store_id': self.store_id,
            'store_name': self.store_name,
            'order_id': self.order_id,
            'distributor_id': self.distributor_id,
            'distributor_name': self.distributor.full_name if self.distributor else None,
            'visit_id': self.visit_id,
            'amount_eur': to_float(self.amount_eur),
            'amount_syp': to_float(self.amount_syp),
            'exchange_rate': to_float(self.exchange_rate),
            'value_eur': float(self.value_in_eur()),
            'currency': self.currency,
            'payment_method': self.payment_method.value if self.payment_method else None,
            'payment_type': self.payment_type.value if self.payment_type else None,
            'payment_date': iso(self.payment_date),
            'payment_reference': self.payment_reference,
            'notes': self.notes,
            'status': self.status.value if self.status else None,
            'completed_at': iso(self.completed_at),
            'verification_status': self.verification_status.value if self.verification_status else None,
            'verified_by': self.verified_by,
            'verified_at': iso(self.verified_at),
            'created_by': self.created_by,
            'created_by_name': self.created_by_name,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at)
        }
