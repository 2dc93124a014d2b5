import logging
from datetime import datetime
from decimal import Decimal

from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func

from extensions import db
from bakery.models import (
    Order, OrderStatus, OrderPaymentStatus, OrderPriority, Store, Product, Payment,
    Notification, StoreVisit
)
from bakery.services.pricing_service import PricingService
from bakery.services.order_service import OrderService
from bakery.services.email_service import EmailService
from bakery.validators.order_validators import OrderValidator
from bakery.utils.helpers import get_pagination_args, paginate, parse_date, csv_response
from bakery.utils.role_guards import (
    staff_required, manager_required, any_role_required, current_role, current_user_id, get_current_user
)

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')

EXPORT_FIELDS = [
    'order_number', 'order_date', 'delivery_date', 'store_name', 'status', 'payment_status', 'priority',
    'total_amount_eur', 'discount_amount_eur', 'final_amount_eur', 'final_amount_syp', 'currency',
    'assigned_distributor_name', 'created_by_name'
]


def _filtered_orders():
    """Apply the list filters from the query string; raises ValueError on bad input"""
    query = Order.query
    args = request.args

    if args.get('status'):
        query = query.filter(Order.status == OrderStatus(args['status']))
    if args.get('payment_status'):
        query = query.filter(Order.payment_status == OrderPaymentStatus(args['payment_status']))
    if args.get('priority'):
        query = query.filter(Order.priority == OrderPriority(args['priority']))
    if args.get('store_id'):
        query = query.filter(Order.store_id == int(args['store_id']))
    if args.get('assigned_distributor_id'):
        query = query.filter(Order.assigned_distributor_id == int(args['assigned_distributor_id']))

    date_from = parse_date(args.get('date_from'), 'date_from')
    date_to = parse_date(args.get('date_to'), 'date_to')
    if date_from:
        query = query.filter(Order.order_date >= date_from)
    if date_to:
        query = query.filter(Order.order_date <= date_to)

    if args.get('search'):
        term = f"%{args['search']}%"
        query = query.filter(or_(Order.order_number.ilike(term), Order.store_name.ilike(term)))

    # Distributors only work with what they were given
    if current_role() == 'distributor':
        query = query.filter(Order.assigned_distributor_id == current_user_id())

    return query


def _can_view(order):
    return current_role() != 'distributor' or order.assigned_distributor_id == current_user_id()


def _load_products(items):
    """Fetch the ordered products, returning (products by id, errors)"""
    ids = {item['product_id'] for item in items}
    products = {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()}
    errors = {}
    for index, item in enumerate(items):
        product = products.get(item['product_id'])
        if product is None:
            errors[str(index)] = f"Product {item['product_id']} not found"
        elif product.status != 'active':
            errors[str(index)] = f"Product {product.name} is not available"
    return products, errors


#  CREATE ORDER
@orders_bp.route('/', methods=['POST'])
@staff_required
def create_order():
    """
    Create a new order for a store
    POST /api/orders
    """
    data = request.get_json(silent=True) or {}

    # Validate input data
    is_valid, validated_data, errors = OrderValidator.validate_create_order(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    store = db.session.get(Store, validated_data['store_id'])
    if store is None:
        return jsonify({'errors': {'store_id': 'Store not found'}}), 400
    if store.status != 'active':
        return jsonify({'errors': {'store_id': 'Store is not active'}}), 400

    products, product_errors = _load_products(validated_data['items'])
    if product_errors:
        return jsonify({'errors': {'items': product_errors}}), 400

    user = get_current_user()

    try:
        rate = PricingService.exchange_rate()
        order_number = Order.generate_order_number()

        order = Order(
            order_number=order_number,
            store=store,
            store_name=store.name,
            order_date=datetime.utcnow().date(),
            delivery_date=validated_data.get('delivery_date'),
            delivery_address=validated_data.get('delivery_address') or store.address,
            currency=validated_data['currency'],
            priority=validated_data['priority'],
            discount_amount_eur=validated_data['discount_amount_eur'],
            notes=validated_data.get('notes'),
            special_instructions=validated_data.get('special_instructions'),
            customer_name=validated_data.get('customer_name'),
            customer_phone=validated_data.get('customer_phone'),
            customer_email=validated_data.get('customer_email'),
            created_by=user.id,
            created_by_name=user.full_name,
            status=OrderStatus.DRAFT,
            payment_status=OrderPaymentStatus.PENDING
        )

        for item in validated_data['items']:
            order.items.append(PricingService.build_order_item(products[item['product_id']], item, rate))
        order.recalculate_totals(rate)

        db.session.add(order)
        db.session.flush()

        store.record_purchase(order.final_amount_eur)
        Notification.notify(
            user.id, 'ORDER_CREATED',
            f'Order {order.order_number} for {store.name} has been created '
            f'({float(order.final_amount_eur):.2f} EUR)',
            order_id=order.id
        )

        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create order")
        return jsonify({'error': f'Failed to create order: {str(e)}'}), 500

    logger.info("Order %s created for store %s", order.order_number, store.id)
    if store.email:
        EmailService.send_order_confirmation(store.email, order.order_number, store.name,
                                             float(order.final_amount_eur))

    return jsonify({
        'message': 'Order created successfully',
        'order': order.to_dict(include_details=True),
        'summary': PricingService.create_order_summary(order)
    }), 201


#  GET ALL ORDERS
@orders_bp.route('/', methods=['GET'])
@any_role_required
def get_orders():
    """
    Get orders
    GET /api/orders
    Query parameters:
    - status, payment_status, priority, store_id, assigned_distributor_id
    - date_from, date_to: order date range (YYYY-MM-DD)
    - search: order number or store name
    - limit: number of orders per page
    - page: page number
    """
    try:
        page, limit = get_pagination_args()
        query = _filtered_orders()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    orders, pagination = paginate(query.order_by(Order.created_at.desc(), Order.id.desc()), page, limit)
    return jsonify({
        'orders': [order.to_dict() for order in orders],
        'pagination': pagination
    }), 200


@orders_bp.route('/today', methods=['GET'])
@any_role_required
def get_today_orders():
    today = datetime.utcnow().date()
    query = Order.query.filter(Order.order_date == today)
    if current_role() == 'distributor':
        query = query.filter(Order.assigned_distributor_id == current_user_id())

    orders = query.order_by(Order.created_at.desc()).all()
    return jsonify({
        'date': today.isoformat(),
        'count': len(orders),
        'orders': [order.to_dict() for order in orders]
    }), 200


@orders_bp.route('/statistics', methods=['GET'])
@any_role_required
def order_statistics():
    try:
        query = _filtered_orders()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    by_status = dict(query.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all())
    billable = query.filter(Order.status != OrderStatus.CANCELLED)
    totals = billable.with_entities(
        func.count(Order.id),
        func.coalesce(func.sum(Order.final_amount_eur), 0),
        func.coalesce(func.sum(Order.final_amount_syp), 0)
    ).one()
    billable_count = totals[0]

    return jsonify({
        'total_orders': query.count(),
        'by_status': {status.value: by_status.get(status, 0) for status in OrderStatus},
        'total_amount_eur': round(float(totals[1]), 2),
        'total_amount_syp': round(float(totals[2]), 2),
        'pending_payments': query.filter(Order.payment_status.in_(
            (OrderPaymentStatus.PENDING, OrderPaymentStatus.PARTIAL, OrderPaymentStatus.OVERDUE))).count(),
        'paid_orders': query.filter(Order.payment_status == OrderPaymentStatus.PAID).count(),
        'average_order_value_eur': round(float(totals[1]) / billable_count, 2) if billable_count else 0
    }), 200


@orders_bp.route('/export', methods=['GET'])
@manager_required
def export_orders():
    try:
        query = _filtered_orders()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    rows = [order.to_dict() for order in query.order_by(Order.order_date.desc(), Order.id.desc()).all()]
    filename = f"orders_{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return csv_response(rows, EXPORT_FIELDS, filename)


#  GET ORDER BY ID
@orders_bp.route('/<int:order_id>', methods=['GET'])
@any_role_required
def get_order(order_id):
    order = db.get_or_404(Order, order_id)
    if not _can_view(order):
        return jsonify({'error': 'You are not assigned to this order'}), 403

    data = order.to_dict(include_details=True)
    data['payments'] = [payment.to_dict() for payment in order.payments.order_by(Payment.id).all()]
    return jsonify({'order': data}), 200


#  UPDATE ORDER
@orders_bp.route('/<int:order_id>', methods=['PUT'])
@staff_required
def update_order(order_id):
    order = db.get_or_404(Order, order_id)
    if not _can_view(order):
        return jsonify({'error': 'You are not assigned to this order'}), 403
    if not order.can_edit():
        return jsonify({'error': f'Cannot edit an order that is {order.status.value}'}), 400

    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = OrderValidator.validate_update_order(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    products = {}
    if 'items' in validated_data:
        products, product_errors = _load_products(validated_data['items'])
        if product_errors:
            return jsonify({'errors': {'items': product_errors}}), 400

    try:
        rate = PricingService.exchange_rate()
        previous_final = order.final_amount_eur or Decimal('0')

        for field in ('delivery_date', 'delivery_address', 'currency', 'priority', 'notes',
                      'special_instructions', 'customer_name', 'customer_phone', 'customer_email',
                      'discount_amount_eur'):
            if field in validated_data:
                setattr(order, field, validated_data[field])

        if 'items' in validated_data:
            order.items.clear()
            for item in validated_data['items']:
                order.items.append(PricingService.build_order_item(products[item['product_id']], item, rate))

        if 'items' in validated_data or 'discount_amount_eur' in validated_data:
            order.recalculate_totals(rate)
            delta = Decimal(str(order.final_amount_eur)) - Decimal(str(previous_final))
            if delta:
                order.store.adjust_purchase(delta)

        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update order %s", order_id)
        return jsonify({'error': f'Failed to update order: {str(e)}'}), 500

    return jsonify({
        'message': 'Order updated successfully',
        'order': order.to_dict(include_details=True)
    }), 200


#  UPDATE ORDER STATUS
@orders_bp.route('/<int:order_id>/status', methods=['PATCH'])
@staff_required
def update_order_status(order_id):
    """
    PATCH /api/orders/<id>/status
    Body: status, notes
    """
    order = db.get_or_404(Order, order_id)
    if not _can_view(order):
        return jsonify({'error': 'You are not assigned to this order'}), 403

    data = request.get_json(silent=True) or {}
    try:
        new_status = OrderStatus(data.get('status'))
    except ValueError:
        return jsonify({'error': f"Status must be one of: {', '.join(s.value for s in OrderStatus)}"}), 400

    try:
        OrderService.change_status(order, new_status, current_user_id(), data.get('notes'))
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update status of order %s", order_id)
        return jsonify({'error': f'Failed to update order status: {str(e)}'}), 500

    if order.store and order.store.email:
        EmailService.send_status_update(order.store.email, order.order_number, new_status.value)

    return jsonify({
        'message': f'Order status updated to {new_status.value}',
        'order': order.to_dict()
    }), 200


@orders_bp.route('/<int:order_id>/payment-status', methods=['PATCH'])
@manager_required
def update_payment_status(order_id):
    order = db.get_or_404(Order, order_id)
    data = request.get_json(silent=True) or {}
    try:
        payment_status = OrderPaymentStatus(data.get('payment_status'))
    except ValueError:
        return jsonify({
            'error': f"payment_status must be one of: {', '.join(s.value for s in OrderPaymentStatus)}"
        }), 400

    try:
        order.payment_status = payment_status
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update payment status of order %s", order_id)
        return jsonify({'error': f'Failed to update payment status: {str(e)}'}), 500

    return jsonify({'message': 'Payment status updated', 'order': order.to_dict()}), 200


#  DELETE ORDER
@orders_bp.route('/<int:order_id>', methods=['DELETE'])
@manager_required
def delete_order(order_id):
    order = db.get_or_404(Order, order_id)
    if not order.can_delete():
        return jsonify({'error': f'Cannot delete an order that is {order.status.value}'}), 400
    if order.payments.count() > 0:
        return jsonify({'error': 'Cannot delete an order that has payments'}), 400

    try:
        if order.status == OrderStatus.DRAFT:
            # Cancelled orders were already taken off the store account
            order.store.adjust_purchase(-(order.final_amount_eur or 0))
            order.store.total_orders = max(0, (order.store.total_orders or 0) - 1)
            OrderService.release_distributor(order)

        for schedule in order.delivery_schedules.all():
            db.session.delete(schedule)
        StoreVisit.query.filter_by(order_id=order.id).update({'order_id': None})
        Notification.query.filter_by(order_id=order.id).delete()
        db.session.delete(order)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete order %s", order_id)
        return jsonify({'error': f'Failed to delete order: {str(e)}'}), 500

    return jsonify({'message': 'Order deleted successfully'}), 200
