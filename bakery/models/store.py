from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import validates
import phonenumbers

from extensions import db
from bakery.utils.helpers import to_float, iso

STORE_TYPES = ('retail', 'wholesale', 'restaurant')
STORE_CATEGORIES = ('supermarket', 'grocery', 'cafe', 'restaurant', 'bakery', 'hotel', 'other')
STORE_SIZES = ('small', 'medium', 'large', 'enterprise')
PAYMENT_TERMS = ('cash', 'credit_7_days', 'credit_15_days', 'credit_30_days')
STORE_STATUSES = ('active', 'inactive', 'suspended')


class Store(db.Model):
    """Customer shop that receives bakery deliveries"""
    __tablename__ = 'stores'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    owner_name = db.Column(db.String(100))
    phone = db.Column(db.String(20))
    email = db.Column(db.String(100))
    address = db.Column(db.Text)

    # Location data
    latitude = db.Column(db.Numeric(10, 8))
    longitude = db.Column(db.Numeric(11, 8))

    store_type = db.Column(db.Enum(*STORE_TYPES, name='store_types'), default='retail', nullable=False)
    category = db.Column(db.Enum(*STORE_CATEGORIES, name='store_categories'), default='grocery', nullable=False)
    size_category = db.Column(db.Enum(*STORE_SIZES, name='store_sizes'), default='small', nullable=False)

    # Account balance (EUR)
    credit_limit_eur = db.Column(db.Numeric(15, 2), default=0)
    current_balance_eur = db.Column(db.Numeric(15, 2), default=0)
    total_purchases_eur = db.Column(db.Numeric(15, 2), default=0)
    total_payments_eur = db.Column(db.Numeric(15, 2), default=0)
    payment_terms = db.Column(db.Enum(*PAYMENT_TERMS, name='payment_terms'), default='cash', nullable=False)

    # Order counters
    total_orders = db.Column(db.Integer, default=0)
    completed_orders = db.Column(db.Integer, default=0)
    last_order_date = db.Column(db.DateTime)
    last_payment_date = db.Column(db.DateTime)

    status = db.Column(db.Enum(*STORE_STATUSES, name='store_statuses'), default='active', nullable=False)
    preferred_delivery_time = db.Column(db.String(100))
    special_instructions = db.Column(db.Text)

    assigned_distributor_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    assigned_distributor = db.relationship('User', foreign_keys=[assigned_distributor_id])
    orders = db.relationship('Order', backref='store', lazy='dynamic')
    payments = db.relationship('Payment', backref='store', lazy='dynamic')

    @validates('name')
    def validate_name(self, key, name):
        name = (name or '').strip()
        if len(name) < 2 or len(name) > 100:
            raise ValueError('Store name must be between 2 and 100 characters')
        return name

    @validates('email')
    def validate_email(self, key, address):
        if not address:
            return None
        address = address.strip().lower()
        if '@' not in address:
            raise ValueError('Invalid email address')
        return address

    @validates('phone')
    def validate_phone(self, key, number):
        if number is None or number == '':
            return None
        if '+' not in number:
            raise ValueError('Phone number must include country code')
        parsed = phonenumbers.parse(number, None)
        if not phonenumbers.is_valid_number(parsed):
            raise ValueError('Enter a valid phone number')
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)

    @property
    def has_coordinates(self):
        return self.latitude is not None and self.longitude is not None

    @property
    def coordinates(self):
        if not self.has_coordinates:
            return None
        return (float(self.latitude), float(self.longitude))

    def record_purchase(self, amount_eur):
        """Book a new order against the store account"""
        amount = Decimal(str(amount_eur))
        self.total_orders = (self.total_orders or 0) + 1
        self.total_purchases_eur = (self.total_purchases_eur or Decimal('0')) + amount
        self.current_balance_eur = (self.current_balance_eur or Decimal('0')) + amount
        self.last_order_date = datetime.utcnow()

    def adjust_purchase(self, delta_eur):
        """Correct the account after an order total changed or was removed"""
        delta = Decimal(str(delta_eur))
        self.total_purchases_eur = (self.total_purchases_eur or Decimal('0')) + delta
        self.current_balance_eur = (self.current_balance_eur or Decimal('0')) + delta

    def record_payment(self, amount_eur):
        """Apply (or with a negative amount, reverse) a completed payment"""
        amount = Decimal(str(amount_eur))
        self.total_payments_eur = (self.total_payments_eur or Decimal('0')) + amount
        self.current_balance_eur = (self.current_balance_eur or Decimal('0')) - amount
        if amount > 0:
            self.last_payment_date = datetime.utcnow()

    def to_summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'latitude': to_float(self.latitude),
            'longitude': to_float(self.longitude),
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'owner_name': self.owner_name,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'latitude': to_float(self.latitude),
            'longitude': to_float(self.longitude),
            'store_type': self.store_type,
            'category': self.category,
            'size_category': self.size_category,
            'credit_limit_eur': to_float(self.credit_limit_eur),
            'current_balance_eur': to_float(self.current_balance_eur),
            'total_purchases_eur': to_float(self.total_purchases_eur),
            'total_payments_eur': to_float(self.total_payments_eur),
            'payment_terms': self.payment_terms,
            'total_orders': self.total_orders,
            'completed_orders': self.completed_orders,
            'last_order_date': iso(self.last_order_date),
            'last_payment_date': iso(self.last_payment_date),
            'status': self.status,
            'preferred_delivery_time': self.preferred_delivery_time,
            'special_instructions': self.special_instructions,
            'assigned_distributor_id': self.assigned_distributor_id,
            'assigned_distributor_name': self.assigned_distributor.full_name if self.assigned_distributor else None,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at)
        }
