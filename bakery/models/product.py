from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import validates

from extensions import db
from bakery.utils.helpers import to_float, iso

PRODUCT_CATEGORIES = ('bread', 'pastry', 'cake', 'drink', 'snack', 'seasonal', 'other')
PRODUCT_STATUSES = ('active', 'inactive', 'discontinued')


class Product(db.Model):
    """Bakery catalogue item"""
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.Enum(*PRODUCT_CATEGORIES, name='product_categories'), default='other', nullable=False)
    unit = db.Column(db.String(20), default='piece')

    # Pricing
    price_eur = db.Column(db.Numeric(10, 2), nullable=False)
    price_syp = db.Column(db.Numeric(15, 2))
    cost_eur = db.Column(db.Numeric(10, 2))
    cost_syp = db.Column(db.Numeric(15, 2))

    # Stock (NULL means not tracked)
    stock_quantity = db.Column(db.Integer)
    minimum_stock = db.Column(db.Integer)

    # Sales counters
    total_sold = db.Column(db.Integer, default=0)
    total_revenue_eur = db.Column(db.Numeric(15, 2), default=0)

    shelf_life_days = db.Column(db.Integer)
    weight_grams = db.Column(db.Integer)
    barcode = db.Column(db.String(50), unique=True)
    image_url = db.Column(db.String(500))
    is_featured = db.Column(db.Boolean, default=False)
    status = db.Column(db.Enum(*PRODUCT_STATUSES, name='product_statuses'), default='active', nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    order_items = db.relationship('OrderItem', backref='product', lazy='dynamic')

    @validates('name')
    def validate_name(self, key, name):
        name = (name or '').strip()
        if len(name) < 2 or len(name) > 100:
            raise ValueError('Product name must be between 2 and 100 characters')
        return name

    @validates('price_eur')
    def validate_price_eur(self, key, price):
        if price is None or Decimal(str(price)) <= 0:
            raise ValueError('Price (EUR) must be greater than zero')
        return price

    @validates('stock_quantity', 'minimum_stock')
    def validate_stock(self, key, quantity):
        if quantity is not None and int(quantity) < 0:
            raise ValueError(f'{key} cannot be negative')
        return quantity

    @property
    def is_low_stock(self):
        if self.stock_quantity is None or self.minimum_stock is None:
            return False
        return self.stock_quantity <= self.minimum_stock

    def record_sale(self, quantity, revenue_eur):
        """Update counters when an order containing this product is delivered"""
        self.total_sold = (self.total_sold or 0) + quantity
        self.total_revenue_eur = (self.total_revenue_eur or Decimal('0')) + Decimal(str(revenue_eur))
        if self.stock_quantity is not None:
            self.stock_quantity = max(0, self.stock_quantity - quantity)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'unit': self.unit,
            'price_eur': to_float(self.price_eur),
            'price_syp': to_float(self.price_syp),
            'cost_eur': to_float(self.cost_eur),
            'cost_syp': to_float(self.cost_syp),
            'stock_quantity': self.stock_quantity,
            'minimum_stock': self.minimum_stock,
            'is_low_stock': self.is_low_stock,
            'total_sold': self.total_sold,
            'total_revenue_eur': to_float(self.total_revenue_eur),
            'shelf_life_days': self.shelf_life_days,
            'weight_grams': self.weight_grams,
            'barcode': self.barcode,
            'image_url': self.image_url,
            'is_featured': self.is_featured,
            'status': self.status,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at)
        }
