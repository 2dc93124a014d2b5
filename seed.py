"""
Seed data for the bakery API.

Both seeders expect an application context (the `flask seed-db` and
`flask seed-delivery` commands provide one) and are idempotent.
"""
import logging
import os
from datetime import datetime, date, time, timedelta
from typing import Optional

from extensions import db
from bakery.models import (
    User, Product, Store, Order, OrderStatus, OrderPaymentStatus, OrderPriority,
    DistributionTrip, StoreVisit, TripStatus, VisitStatus,
    DeliverySchedule, DeliveryType, ScheduleStatus
)
from bakery.models.delivery import time_slot_for
from bakery.services.distribution_service import DistributionService
from bakery.services.pricing_service import PricingService
from bakery.services.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

STAFF = [
    {'username': 'manager', 'email': 'manager@bakery.local', 'full_name': 'Maya Haddad',
     'role': 'manager', 'phone': '+963933111222', 'performance_rating': 0},
    {'username': 'distributor1', 'email': 'distributor1@bakery.local', 'full_name': 'Omar Khalil',
     'role': 'distributor', 'phone': '+963944222333', 'performance_rating': 4.6},
    {'username': 'distributor2', 'email': 'distributor2@bakery.local', 'full_name': 'Rami Nasser',
     'role': 'distributor', 'phone': '+963955333444', 'performance_rating': 4.2},
    {'username': 'distributor3', 'email': 'distributor3@bakery.local', 'full_name': 'Lina Saleh',
     'role': 'distributor', 'phone': '+963988444555', 'performance_rating': 3.9},
]

PRODUCTS = [
    {'name': 'White Bread Loaf', 'category': 'bread', 'unit': 'loaf', 'price_eur': '1.20', 'cost_eur': '0.55',
     'stock_quantity': 200, 'minimum_stock': 40, 'shelf_life_days': 3, 'weight_grams': 500, 'is_featured': True},
    {'name': 'Whole Wheat Bread', 'category': 'bread', 'unit': 'loaf', 'price_eur': '1.60', 'cost_eur': '0.75',
     'stock_quantity': 120, 'minimum_stock': 30, 'shelf_life_days': 3, 'weight_grams': 500},
    {'name': 'Arabic Pita Pack', 'category': 'bread', 'unit': 'pack', 'price_eur': '0.90', 'cost_eur': '0.35',
     'stock_quantity': 300, 'minimum_stock': 60, 'shelf_life_days': 2, 'weight_grams': 1000, 'is_featured': True},
    {'name': 'Butter Croissant', 'category': 'pastry', 'unit': 'piece', 'price_eur': '0.80', 'cost_eur': '0.30',
     'stock_quantity': 150, 'minimum_stock': 40, 'shelf_life_days': 2, 'weight_grams': 70},
    {'name': 'Cheese Manakish', 'category': 'pastry', 'unit': 'piece', 'price_eur': '1.10', 'cost_eur': '0.45',
     'stock_quantity': 100, 'minimum_stock': 25, 'shelf_life_days': 1, 'weight_grams': 150},
    {'name': 'Chocolate Cake', 'category': 'cake', 'unit': 'piece', 'price_eur': '12.00', 'cost_eur': '5.50',
     'stock_quantity': 15, 'minimum_stock': 5, 'shelf_life_days': 4, 'weight_grams': 1200},
    {'name': 'Date Maamoul Box', 'category': 'snack', 'unit': 'box', 'price_eur': '6.50', 'cost_eur': '2.80',
     'stock_quantity': 40, 'minimum_stock': 10, 'shelf_life_days': 30, 'weight_grams': 500},
    {'name': 'Fresh Orange Juice', 'category': 'drink', 'unit': 'bottle', 'price_eur': '2.00', 'cost_eur': '0.90',
     'stock_quantity': 60, 'minimum_stock': 20, 'shelf_life_days': 5, 'weight_grams': 1000},
]

STORES = [
    {'name': 'Al Salam Market', 'owner_name': 'Khaled Salam', 'phone': '+963933555001',
     'email': 'salam@stores.local', 'address': 'Baghdad Street, Damascus',
     'latitude': '33.51820000', 'longitude': '36.30200000', 'category': 'supermarket', 'size_category': 'large',
     'credit_limit_eur': '500.00', 'payment_terms': 'credit_15_days'},
    {'name': 'Corner Grocery Mezzeh', 'owner_name': 'Hala Youssef', 'phone': '+963944555002',
     'address': 'Mezzeh Highway, Damascus', 'latitude': '33.50350000', 'longitude': '36.25640000',
     'category': 'grocery', 'size_category': 'small', 'credit_limit_eur': '150.00'},
    {'name': 'Old City Cafe', 'owner_name': 'Samir Aziz', 'phone': '+963955555003',
     'email': 'oldcity@stores.local', 'address': 'Straight Street, Old Damascus',
     'latitude': '33.51080000', 'longitude': '36.30970000', 'category': 'cafe', 'size_category': 'medium',
     'credit_limit_eur': '250.00', 'payment_terms': 'credit_7_days'},
    {'name': 'Malki Minimarket', 'owner_name': 'Nour Hamdan', 'phone': '+963988555004',
     'address': 'Malki Square, Damascus', 'latitude': '33.52180000', 'longitude': '36.28330000',
     'category': 'grocery', 'size_category': 'small', 'credit_limit_eur': '100.00'},
    {'name': 'Jaramana Family Store', 'owner_name': 'Fadi Mansour', 'phone': '+963933555005',
     'address': 'Main Road, Jaramana', 'latitude': '33.48610000', 'longitude': '36.34640000',
     'category': 'supermarket', 'size_category': 'medium', 'credit_limit_eur': '300.00', 'payment_terms': 'credit_30_days'},
]

# store index, priority, [(product index, quantity)]
SAMPLE_ORDERS = [
    (0, OrderPriority.HIGH, [(0, 40), (2, 60), (3, 30)]),
    (1, OrderPriority.NORMAL, [(0, 15), (4, 20)]),
    (2, OrderPriority.URGENT, [(3, 50), (5, 2), (7, 12)]),
    (3, OrderPriority.LOW, [(2, 25), (6, 4)]),
    (4, OrderPriority.NORMAL, [(0, 30), (1, 20), (2, 40)]),
]


def _get_or_create_user(username, email, full_name, role, password, phone=None, performance_rating=0):
    user = User.query.filter_by(username=username).first()
    if user:
        logger.info("User already exists: %s", username)
        return user, False

    user = User(username=username, email=email, full_name=full_name, role=role, status='active',
                phone=phone, performance_rating=performance_rating)
    user.set_password(password)
    db.session.add(user)
    return user, True


def seed_data(admin_email: Optional[str] = None, admin_password: Optional[str] = None):
    """Create staff, the product catalogue, stores and a few orders

    - Uses ADMIN_USERNAME, ADMIN_EMAIL and ADMIN_PASSWORD environment variables when available.
    - Idempotent: existing users, products and stores are kept, and orders are
      only added to an empty orders table.
    """
    db.create_all()
    created = {'users': 0, 'products': 0, 'stores': 0, 'orders': 0}

    admin_username = os.getenv('ADMIN_USERNAME', 'admin')
    admin_email = admin_email or os.getenv('ADMIN_EMAIL', 'admin@bakery.local')
    admin_password = admin_password or os.getenv('ADMIN_PASSWORD', 'adminpass')
    sample_password = os.getenv('SAMPLE_PASSWORD', 'password')

    admin, is_new = _get_or_create_user(admin_username, admin_email, 'Admin User', 'admin', admin_password)
    created['users'] += int(is_new)
    for staff in STAFF:
        _, is_new = _get_or_create_user(password=sample_password, **staff)
        created['users'] += int(is_new)
    db.session.commit()

    rate = PricingService.exchange_rate()
    products = []
    for entry in PRODUCTS:
        product = Product.query.filter_by(name=entry['name']).first()
        if product is None:
            product = Product(created_by=admin.id, **entry)
            product.price_syp = PricingService.eur_to_syp(product.price_eur, rate)
            db.session.add(product)
            created['products'] += 1
        products.append(product)

    stores = []
    distributors = User.query.filter_by(role='distributor').order_by(User.id).all()
    for index, entry in enumerate(STORES):
        store = Store.query.filter_by(name=entry['name']).first()
        if store is None:
            store = Store(created_by=admin.id, **entry)
            if distributors:
                store.assigned_distributor_id = distributors[index % len(distributors)].id
            db.session.add(store)
            created['stores'] += 1
        stores.append(store)
    db.session.commit()

    if Order.query.count() == 0:
        for position, (store_index, priority, lines) in enumerate(SAMPLE_ORDERS):
            store = stores[store_index]
            order_number = Order.generate_order_number()
            order = Order(
                order_number=order_number,
                store=store,
                store_name=store.name,
                order_date=date.today(),
                delivery_date=date.today() + timedelta(days=1),
                delivery_address=store.address,
                currency='EUR',
                priority=priority,
                status=OrderStatus.DRAFT,
                payment_status=OrderPaymentStatus.PENDING,
                created_by=admin.id,
                created_by_name=admin.full_name
            )
            for product_index, quantity in lines:
                order.items.append(PricingService.build_order_item(products[product_index],
                                                                   {'quantity': quantity}, rate))
            order.recalculate_totals(rate)
            db.session.add(order)
            db.session.flush()
            store.record_purchase(order.final_amount_eur)

            # Leave the first order as a draft and hand the rest out
            if position > 0 and distributors:
                DistributionService.assign(order)
            created['orders'] += 1
        db.session.commit()

    logger.info("Seed complete: %s", created)
    return created


def seed_delivery_data():
    """Insert sample trips, store visits and delivery schedules around today"""
    db.create_all()
    if DistributionTrip.query.first() is not None:
        logger.info("Distribution trips already exist, skipping delivery seed")
        return {'trips': 0, 'visits': 0, 'schedules': 0}

    distributors = User.query.filter_by(role='distributor', status='active').order_by(User.id).all()
    stores = Store.query.filter(Store.latitude.isnot(None)).order_by(Store.id).all()
    admin = User.query.filter_by(role='admin').order_by(User.id).first()
    if not distributors or not stores:
        logger.warning("Run seed-db first: delivery seed needs distributors and stores")
        return {'trips': 0, 'visits': 0, 'schedules': 0}

    today = date.today()
    yesterday = today - timedelta(days=1)
    created = {'trips': 0, 'visits': 0, 'schedules': 0}

    # Yesterday's finished round
    trip_number = DistributionTrip.generate_trip_number(yesterday)
    finished = DistributionTrip(
        trip_number=trip_number,
        distributor_id=distributors[0].id,
        trip_date=yesterday,
        trip_status=TripStatus.COMPLETED,
        start_time=datetime.combine(yesterday, time(7, 30)),
        end_time=datetime.combine(yesterday, time(11, 45)),
        total_distance=18.40,
        total_duration=255,
        fuel_consumption=2.10,
        notes='Morning round',
        created_by=admin.id if admin else None
    )
    for position, store in enumerate(stores[:3]):
        arrival = datetime.combine(yesterday, time(8 + position, 0))
        finished.visits.append(StoreVisit(
            store_id=store.id,
            store_name=store.name,
            visit_order=position + 1,
            planned_arrival_time=arrival,
            actual_arrival_time=arrival + timedelta(minutes=5),
            actual_departure_time=arrival + timedelta(minutes=25),
            visit_status=VisitStatus.COMPLETED if position < 2 else VisitStatus.FAILED,
            delivery_successful=position < 2,
            problems_encountered=[] if position < 2 else ['Store closed'],
            order_value_eur=0
        ))
    db.session.add(finished)
    db.session.flush()
    created['trips'] += 1
    created['visits'] += len(finished.visits)

    # Today's planned rounds, one per distributor, spread over the stores
    open_orders = Order.query.filter(
        Order.status.in_((OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS))
    ).order_by(Order.id).all()
    for index, distributor in enumerate(distributors):
        trip_number = DistributionTrip.generate_trip_number(today)
        trip = DistributionTrip(
            trip_number=trip_number,
            distributor_id=distributor.id,
            trip_date=today,
            trip_status=TripStatus.PLANNED,
            notes=f'Planned round for {distributor.full_name}',
            created_by=admin.id if admin else None
        )
        round_stores = stores[index::len(distributors)]
        for position, store in enumerate(round_stores):
            order = next((o for o in open_orders
                          if o.store_id == store.id and o.assigned_distributor_id == distributor.id), None)
            trip.visits.append(StoreVisit(
                store_id=store.id,
                store_name=store.name,
                order_id=order.id if order else None,
                visit_order=position + 1,
                planned_arrival_time=datetime.combine(today, time(8, 30)) + timedelta(minutes=40 * position),
                visit_status=VisitStatus.SCHEDULED,
                order_value_eur=order.final_amount_eur if order else 0
            ))
        if not trip.visits:
            continue
        db.session.add(trip)
        db.session.flush()
        created['trips'] += 1
        created['visits'] += len(trip.visits)

    # Tomorrow's delivery windows for the open orders
    tomorrow = today + timedelta(days=1)
    max_reschedules = SchedulingService.max_reschedules()
    for position, order in enumerate(open_orders):
        hour = 9 + position % 8
        start = time(hour, 0)
        store = order.store
        db.session.add(DeliverySchedule(
            order_id=order.id,
            distributor_id=order.assigned_distributor_id,
            scheduled_date=tomorrow,
            scheduled_time_start=start,
            scheduled_time_end=time(hour + 1, 0),
            time_slot=time_slot_for(start),
            delivery_type=DeliveryType.EXPRESS if order.priority == OrderPriority.URGENT else DeliveryType.STANDARD,
            priority=order.priority.value,
            status=ScheduleStatus.SCHEDULED,
            delivery_address=order.delivery_address or store.address,
            contact_person=store.owner_name,
            contact_phone=store.phone,
            contact_email=store.email,
            max_reschedules=max_reschedules,
            created_by=admin.id if admin else None
        ))
        created['schedules'] += 1

    db.session.commit()
    logger.info("Delivery seed complete: %s", created)
    return created


if __name__ == "__main__":
    from bakery import create_app

    with create_app().app_context():
        seed_data()
        seed_delivery_data()
