from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Enum

from extensions import db
from bakery.utils.helpers import to_float, iso
from bakery.utils.numbering import next_document_number


class OrderStatus(PyEnum):
    DRAFT = 'draft'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in_progress'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class OrderPaymentStatus(PyEnum):
    PENDING = 'pending'
    PARTIAL = 'partial'
    PAID = 'paid'
    OVERDUE = 'overdue'


class OrderPriority(PyEnum):
    LOW = 'low'
    NORMAL = 'normal'
    HIGH = 'high'
    URGENT = 'urgent'


ORDER_CURRENCIES = ('EUR', 'SYP')

# Orders a distributor still has to work on
ACTIVE_ORDER_STATUSES = (OrderStatus.DRAFT, OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS)

PRIORITY_RANK = {
    OrderPriority.URGENT: 0,
    OrderPriority.HIGH: 1,
    OrderPriority.NORMAL: 2,
    OrderPriority.LOW: 3,
}


class Order(db.Model):
    """Bakery order placed for a store"""
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(50), unique=True, nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey('stores.id'), nullable=False, index=True)
    store_name = db.Column(db.String(100), nullable=False)

    order_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date(), index=True)
    delivery_date = db.Column(db.Date)

    # Amounts
    total_amount_eur = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_amount_syp = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount_eur = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    discount_amount_syp = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    final_amount_eur = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    final_amount_syp = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    currency = db.Column(db.Enum(*ORDER_CURRENCIES, name='order_currencies'), nullable=False, default='EUR')

    status = db.Column(Enum(OrderStatus), nullable=False, default=OrderStatus.DRAFT, index=True)
    payment_status = db.Column(Enum(OrderPaymentStatus), nullable=False, default=OrderPaymentStatus.PENDING)
    priority = db.Column(Enum(OrderPriority), nullable=False, default=OrderPriority.NORMAL)

    notes = db.Column(db.Text)
    special_instructions = db.Column(db.Text)
    delivery_address = db.Column(db.Text)
    customer_name = db.Column(db.String(100))
    customer_phone = db.Column(db.String(20))
    customer_email = db.Column(db.String(100))

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_by_name = db.Column(db.String(100))
    assigned_distributor_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    items = db.relationship('OrderItem', backref='order', lazy=True,
                            cascade='all, delete-orphan', order_by='OrderItem.id')
    payments = db.relationship('Payment', backref='order', lazy='dynamic')
    creator = db.relationship('User', foreign_keys=[created_by])
    assigned_distributor = db.relationship('User', foreign_keys=[assigned_distributor_id],
                                           backref=db.backref('assigned_orders', lazy='dynamic'))

    STATUS_FLOW = {
        OrderStatus.DRAFT: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
        OrderStatus.CONFIRMED: [OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED, OrderStatus.DRAFT],
        OrderStatus.IN_PROGRESS: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
        OrderStatus.DELIVERED: [],
        OrderStatus.CANCELLED: []
    }

    @classmethod
    def generate_order_number(cls):
        """ORD-YYYYMMDD-NNNN, numbered per day"""
        return next_document_number(cls, cls.order_number, 'ORD')

    def can_edit(self):
        return self.status in (OrderStatus.DRAFT, OrderStatus.CONFIRMED)

    def can_delete(self):
        return self.status in (OrderStatus.DRAFT, OrderStatus.CANCELLED)

    def can_cancel(self):
        return self.status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def can_transition_to(self, new_status):
        return new_status in self.STATUS_FLOW.get(self.status, [])

    def update_status(self, new_status):
        """Update order status with validation"""
        if not self.can_transition_to(new_status):
            raise ValueError(f"Cannot change status from {self.status.value} to {new_status.value}")

        self.status = new_status
        self.updated_at = datetime.utcnow()

        if new_status == OrderStatus.DELIVERED and not self.delivery_date:
            self.delivery_date = datetime.utcnow().date()

    def recalculate_totals(self, exchange_rate):
        """
        Sum item lines into order totals and subtract every discount

        discount_amount_eur and discount_amount_syp hold the order-level
        discount only. Item discounts stay on their lines but still come off
        the final amounts.
        """
        total_eur = sum((item.total_price_eur or Decimal('0') for item in self.items), Decimal('0'))
        total_syp = sum((item.total_price_syp or Decimal('0') for item in self.items), Decimal('0'))
        item_discounts = sum((item.discount_amount_eur or Decimal('0') for item in self.items), Decimal('0'))

        discount_eur = Decimal(str(self.discount_amount_eur or 0)) + item_discounts
        final_eur = total_eur - discount_eur
        if final_eur < 0:
            raise ValueError('Discount cannot exceed the order total')

        rate = Decimal(str(exchange_rate))
        self.total_amount_eur = total_eur
        self.total_amount_syp = total_syp
        self.discount_amount_syp = (Decimal(str(self.discount_amount_eur or 0)) * rate).quantize(Decimal('0.01'))
        self.final_amount_eur = final_eur
        self.final_amount_syp = (total_syp - discount_eur * rate).quantize(Decimal('0.01'))

    def get_total_amount(self):
        if self.currency == 'SYP':
            return float(self.final_amount_syp or 0)
        return float(self.final_amount_eur or 0)

    def to_dict(self, include_details=False):
        """Convert order to dictionary"""
        data = {
            'id': self.id,
            'order_number': self.order_number,
            'store_id': self.store_id,
            'store_name': self.store_name,
            'order_date': iso(self.order_date),
            'delivery_date': iso(self.delivery_date),
            'total_amount_eur': to_float(self.total_amount_eur),
            'total_amount_syp': to_float(self.total_amount_syp),
            'discount_amount_eur': to_float(self.discount_amount_eur),
            'discount_amount_syp': to_float(self.discount_amount_syp),
            'final_amount_eur': to_float(self.final_amount_eur),
            'final_amount_syp': to_float(self.final_amount_syp),
            'currency': self.currency,
            'status': self.status.value if self.status else None,
            'payment_status': self.payment_status.value if self.payment_status else None,
            'priority': self.priority.value if self.priority else None,
            'assigned_distributor_id': self.assigned_distributor_id,
            'assigned_distributor_name': self.assigned_distributor.full_name if self.assigned_distributor else None,
            'created_by': self.created_by,
            'created_by_name': self.created_by_name,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at)
        }

        if include_details:
            data.update({
                'notes': self.notes,
                'special_instructions': self.special_instructions,
                'delivery_address': self.delivery_address,
                'customer': {
                    'name': self.customer_name,
                    'phone': self.customer_phone,
                    'email': self.customer_email
                },
                'items': [item.to_dict() for item in self.items],
                'store': self.store.to_summary() if self.store else None
            })

        return data


class OrderItem(db.Model):
    """Product line of an order, with a snapshot of the product at order time"""
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)

    product_name = db.Column(db.String(100), nullable=False)
    product_category = db.Column(db.String(50))
    unit = db.Column(db.String(50), default='piece')

    quantity = db.Column(db.Integer, nullable=False)
    delivered_quantity = db.Column(db.Integer, default=0)
    returned_quantity = db.Column(db.Integer, default=0)
    damaged_quantity = db.Column(db.Integer, default=0)
    gift_quantity = db.Column(db.Integer, default=0)
    gift_reason = db.Column(db.String(100))

    unit_price_eur = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    unit_price_syp = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_price_eur = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_price_syp = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount_eur = db.Column(db.Numeric(10, 2), default=0)
    final_price_eur = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    final_price_syp = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'product_category': self.product_category,
            'unit': self.unit,
            'quantity': self.quantity,
            'delivered_quantity': self.delivered_quantity,
            'returned_quantity': self.returned_quantity,
            'damaged_quantity': self.damaged_quantity,
            'gift_quantity': self.gift_quantity,
            'gift_reason': self.gift_reason,
            'unit_price_eur': to_float(self.unit_price_eur),
            'unit_price_syp': to_float(self.unit_price_syp),
            'total_price_eur': to_float(self.total_price_eur),
            'total_price_syp': to_float(self.total_price_syp),
            'discount_amount_eur': to_float(self.discount_amount_eur),
            'final_price_eur': to_float(self.final_price_eur),
            'final_price_syp': to_float(self.final_price_syp),
            'notes': self.notes
        }
