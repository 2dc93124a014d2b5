import logging
from decimal import Decimal

from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func
import phonenumbers

from extensions import db
from bakery.models import Store, Order, Payment, PaymentStatus, OrderStatus, User
from bakery.models.store import STORE_STATUSES, STORE_CATEGORIES, STORE_TYPES
from bakery.services.maps_service import MapsService
from bakery.validators.catalog_validators import StoreValidator
from bakery.utils.helpers import get_pagination_args, paginate, to_float
from bakery.utils.role_guards import manager_required, any_role_required, current_user_id

logger = logging.getLogger(__name__)

stores_bp = Blueprint('stores', __name__, url_prefix='/api/stores')


def _check_distributor(distributor_id):
    if distributor_id is None:
        return None
    distributor = db.session.get(User, distributor_id)
    if not distributor or not distributor.is_distributor:
        return 'Assigned distributor not found'
    return None


@stores_bp.route('/', methods=['GET'])
@any_role_required
def get_stores():
    """
    GET /api/stores
    Query parameters: status, category, store_type, search,
    assigned_distributor_id, page, limit
    """
    try:
        page, limit = get_pagination_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    query = Store.query
    for field in ('status', 'category', 'store_type'):
        if request.args.get(field):
            query = query.filter(getattr(Store, field) == request.args[field])
    if request.args.get('assigned_distributor_id'):
        query = query.filter(Store.assigned_distributor_id == request.args.get('assigned_distributor_id', type=int))
    if request.args.get('search'):
        term = f"%{request.args['search']}%"
        query = query.filter(or_(Store.name.ilike(term), Store.owner_name.ilike(term),
                                 Store.address.ilike(term), Store.phone.ilike(term)))

    stores, pagination = paginate(query.order_by(Store.name.asc(), Store.id.asc()), page, limit)
    return jsonify({
        'stores': [store.to_dict() for store in stores],
        'pagination': pagination
    }), 200


@stores_bp.route('/nearby', methods=['GET'])
@any_role_required
def nearby_stores():
    """
    GET /api/stores/nearby?lat=&lng=&radius_km=
    """
    try:
        lat = float(request.args['lat'])
        lng = float(request.args['lng'])
        radius_km = float(request.args.get('radius_km', 5))
    except (KeyError, ValueError):
        return jsonify({'error': 'lat and lng are required numbers'}), 400
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180) or radius_km <= 0:
        return jsonify({'error': 'Invalid coordinates or radius'}), 400

    stores = Store.query.filter(Store.latitude.isnot(None), Store.longitude.isnot(None)).all()
    results = []
    for store in stores:
        distance = MapsService.haversine_km(lat, lng, float(store.latitude), float(store.longitude))
        if distance <= radius_km:
            results.append(dict(store.to_summary(), distance_km=round(distance, 2)))

    results.sort(key=lambda entry: entry['distance_km'])
    return jsonify({'stores': results, 'count': len(results), 'radius_km': radius_km}), 200


@stores_bp.route('/map', methods=['GET'])
@any_role_required
def stores_map():
    stores = Store.query.filter(Store.status == 'active', Store.latitude.isnot(None),
                                Store.longitude.isnot(None)).all()
    return jsonify({'stores': [dict(store.to_summary(),
                                    category=store.category,
                                    current_balance_eur=to_float(store.current_balance_eur))
                               for store in stores]}), 200


@stores_bp.route('/statistics', methods=['GET'])
@any_role_required
def store_statistics():
    by_status = dict(db.session.query(Store.status, func.count(Store.id)).group_by(Store.status).all())
    by_category = dict(db.session.query(Store.category, func.count(Store.id)).group_by(Store.category).all())
    by_type = dict(db.session.query(Store.store_type, func.count(Store.id)).group_by(Store.store_type).all())
    totals = db.session.query(
        func.coalesce(func.sum(Store.total_purchases_eur), 0),
        func.coalesce(func.sum(Store.total_payments_eur), 0),
        func.coalesce(func.sum(Store.current_balance_eur), 0)
    ).one()

    return jsonify({
        'total_stores': Store.query.count(),
        'by_status': {status: by_status.get(status, 0) for status in STORE_STATUSES},
        'by_category': {category: by_category.get(category, 0) for category in STORE_CATEGORIES},
        'by_type': {store_type: by_type.get(store_type, 0) for store_type in STORE_TYPES},
        'with_coordinates': Store.query.filter(Store.latitude.isnot(None), Store.longitude.isnot(None)).count(),
        'total_purchases_eur': round(float(totals[0]), 2),
        'total_payments_eur': round(float(totals[1]), 2),
        'total_balance_eur': round(float(totals[2]), 2)
    }), 200


@stores_bp.route('/<int:store_id>', methods=['GET'])
@any_role_required
def get_store(store_id):
    store = db.get_or_404(Store, store_id)
    recent_orders = store.orders.order_by(Order.created_at.desc()).limit(10).all()
    recent_payments = store.payments.order_by(Payment.created_at.desc()).limit(10).all()
    return jsonify({
        'store': store.to_dict(),
        'recent_orders': [order.to_dict() for order in recent_orders],
        'recent_payments': [payment.to_dict() for payment in recent_payments]
    }), 200


@stores_bp.route('/', methods=['POST'])
@manager_required
def create_store():
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = StoreValidator.validate(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    distributor_error = _check_distributor(validated_data.get('assigned_distributor_id'))
    if distributor_error:
        return jsonify({'errors': {'assigned_distributor_id': distributor_error}}), 400

    try:
        store = Store(created_by=current_user_id(), **validated_data)
        if not store.has_coordinates and store.address:
            location = MapsService().geocode(store.address)
            if location:
                store.latitude, store.longitude = location
        db.session.add(store)
        db.session.commit()
    except (ValueError, phonenumbers.NumberParseException) as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create store")
        return jsonify({'error': f'Failed to create store: {str(e)}'}), 500

    return jsonify({'message': 'Store created successfully', 'store': store.to_dict()}), 201


@stores_bp.route('/<int:store_id>', methods=['PUT'])
@manager_required
def update_store(store_id):
    store = db.get_or_404(Store, store_id)
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = StoreValidator.validate(data, partial=True)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    distributor_error = _check_distributor(validated_data.get('assigned_distributor_id'))
    if distributor_error:
        return jsonify({'errors': {'assigned_distributor_id': distributor_error}}), 400

    try:
        for field, value in validated_data.items():
            setattr(store, field, value)
        db.session.commit()
    except (ValueError, phonenumbers.NumberParseException) as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update store %s", store_id)
        return jsonify({'error': f'Failed to update store: {str(e)}'}), 500

    return jsonify({'message': 'Store updated successfully', 'store': store.to_dict()}), 200


@stores_bp.route('/<int:store_id>/status', methods=['PATCH'])
@manager_required
def update_store_status(store_id):
    store = db.get_or_404(Store, store_id)
    status = (request.get_json(silent=True) or {}).get('status')
    if status not in STORE_STATUSES:
        return jsonify({'error': f"Status must be one of: {', '.join(STORE_STATUSES)}"}), 400

    try:
        store.status = status
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update status of store %s", store_id)
        return jsonify({'error': f'Failed to update store status: {str(e)}'}), 500

    return jsonify({'message': 'Store status updated', 'store': store.to_dict()}), 200


@stores_bp.route('/<int:store_id>', methods=['DELETE'])
@manager_required
def delete_store(store_id):
    store = db.get_or_404(Store, store_id)
    try:
        if store.orders.count() > 0 or store.payments.count() > 0:
            store.status = 'inactive'
            db.session.commit()
            return jsonify({
                'message': 'Store has orders and was deactivated instead of deleted',
                'store': store.to_dict()
            }), 200

        db.session.delete(store)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete store %s", store_id)
        return jsonify({'error': f'Failed to delete store: {str(e)}'}), 500

    return jsonify({'message': 'Store deleted successfully'}), 200


@stores_bp.route('/<int:store_id>/orders', methods=['GET'])
@any_role_required
def get_store_orders(store_id):
    store = db.get_or_404(Store, store_id)
    try:
        page, limit = get_pagination_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    query = store.orders
    if request.args.get('status'):
        try:
            query = query.filter(Order.status == OrderStatus(request.args['status']))
        except ValueError:
            return jsonify({'error': 'Invalid status filter'}), 400

    orders, pagination = paginate(query.order_by(Order.created_at.desc(), Order.id.desc()), page, limit)
    return jsonify({'orders': [order.to_dict() for order in orders], 'pagination': pagination}), 200


@stores_bp.route('/<int:store_id>/payments', methods=['GET'])
@any_role_required
def get_store_payments(store_id):
    store = db.get_or_404(Store, store_id)
    try:
        page, limit = get_pagination_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    payments, pagination = paginate(
        store.payments.order_by(Payment.payment_date.desc(), Payment.id.desc()), page, limit
    )
    return jsonify({'payments': [p.to_dict() for p in payments], 'pagination': pagination}), 200


@stores_bp.route('/<int:store_id>/statistics', methods=['GET'])
@any_role_required
def get_store_statistics(store_id):
    store = db.get_or_404(Store, store_id)

    orders = store.orders.filter(Order.status != OrderStatus.CANCELLED)
    order_count = orders.count()
    purchases = orders.with_entities(func.coalesce(func.sum(Order.final_amount_eur), 0)).scalar()
    completed = store.payments.filter(Payment.status == PaymentStatus.COMPLETED).all()
    paid = sum((payment.value_in_eur() for payment in completed), Decimal('0'))

    return jsonify({
        'store_id': store.id,
        'store_name': store.name,
        'total_orders': order_count,
        'delivered_orders': store.orders.filter(Order.status == OrderStatus.DELIVERED).count(),
        'total_purchases_eur': round(float(purchases or 0), 2),
        'total_payments_eur': round(float(paid), 2),
        'current_balance_eur': to_float(store.current_balance_eur),
        'average_order_value_eur': round(float(purchases or 0) / order_count, 2) if order_count else 0,
        'last_order_date': store.last_order_date.isoformat() if store.last_order_date else None,
        'last_payment_date': store.last_payment_date.isoformat() if store.last_payment_date else None
    }), 200
