"""Top-level models package imports.

Importing model modules here ensures SQLAlchemy registers all models
when `bakery.models` is imported. This prevents relationship resolution
errors (e.g., when a relationship references a class defined in
another module).
"""

from .user import User
from .token_blocklist import TokenBlocklist
from .store import Store
from .product import Product
from .order import Order, OrderItem, OrderStatus, OrderPaymentStatus, OrderPriority
from .payment import Payment, PaymentStatus, PaymentMethod, PaymentType, VerificationStatus
from .tax import TaxSetting
from .delivery import DeliverySchedule, ScheduleStatus, TimeSlot, DeliveryType
from .delivery_tracking import DeliveryTracking
from .distribution import DistributionTrip, StoreVisit, TripStatus, VisitStatus
from .notification import Notification

__all__ = [
    "User",
    "TokenBlocklist",
    "Store",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderPaymentStatus",
    "OrderPriority",
    "Payment",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentType",
    "VerificationStatus",
    "TaxSetting",
    "DeliverySchedule",
    "ScheduleStatus",
    "TimeSlot",
    "DeliveryType",
    "DeliveryTracking",
    "DistributionTrip",
    "StoreVisit",
    "TripStatus",
    "VisitStatus",
    "Notification",
]
