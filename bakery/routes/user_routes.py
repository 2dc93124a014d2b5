import logging
from datetime import datetime

from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func
import phonenumbers

from extensions import db
from bakery.models import User, Order, OrderStatus, DistributionTrip, Notification, TokenBlocklist
from bakery.models.order import ACTIVE_ORDER_STATUSES
from bakery.models.user import USER_ROLES, USER_STATUSES
from bakery.utils.helpers import get_pagination_args, paginate
from bakery.utils.role_guards import admin_required, manager_required, current_user_id

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


#  LIST USERS
@users_bp.route('/', methods=['GET'])
@manager_required
def get_users():
    """
    GET /api/users
    Query parameters: role, status, search, page, limit
    """
    try:
        page, limit = get_pagination_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    query = User.query
    if request.args.get('role'):
        query = query.filter(User.role == request.args['role'])
    if request.args.get('status'):
        query = query.filter(User.status == request.args['status'])
    if request.args.get('search'):
        term = f"%{request.args['search']}%"
        query = query.filter(or_(User.username.ilike(term), User.full_name.ilike(term), User.email.ilike(term)))

    users, pagination = paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, limit)
    return jsonify({
        'users': [user.to_dict() for user in users],
        'pagination': pagination
    }), 200


@users_bp.route('/statistics', methods=['GET'])
@manager_required
def user_statistics():
    by_role = dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all())
    by_status = dict(db.session.query(User.status, func.count(User.id)).group_by(User.status).all())
    return jsonify({
        'total_users': User.query.count(),
        'by_role': {role: by_role.get(role, 0) for role in USER_ROLES},
        'by_status': {status: by_status.get(status, 0) for status in USER_STATUSES}
    }), 200


@users_bp.route('/distributors', methods=['GET'])
@manager_required
def get_distributors():
    distributors = User.query.filter_by(role='distributor', status='active').order_by(
        User.current_workload.asc(), User.id.asc()
    ).all()
    return jsonify({'distributors': [d.to_dict() for d in distributors]}), 200


@users_bp.route('/distributors/<int:user_id>', methods=['GET'])
@manager_required
def get_distributor(user_id):
    distributor = User.query.filter_by(id=user_id, role='distributor').first()
    if not distributor:
        return jsonify({'error': 'Distributor not found'}), 404

    orders = Order.query.filter_by(assigned_distributor_id=distributor.id)
    today = datetime.utcnow().date()
    trips = DistributionTrip.query.filter_by(distributor_id=distributor.id, trip_date=today).all()

    return jsonify({
        'distributor': distributor.to_dict(),
        'active_orders': orders.filter(Order.status.in_(ACTIVE_ORDER_STATUSES)).count(),
        'delivered_orders': orders.filter(Order.status == OrderStatus.DELIVERED).count(),
        'today_trips': [trip.to_dict() for trip in trips]
    }), 200


@users_bp.route('/<int:user_id>', methods=['GET'])
@manager_required
def get_user(user_id):
    user = db.get_or_404(User, user_id)
    return jsonify({'user': user.to_dict()}), 200


@users_bp.route('/', methods=['POST'])
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}

    missing = {f: f'{f} is required' for f in ('username', 'email', 'password', 'full_name') if not data.get(f)}
    if missing:
        return jsonify({'errors': missing}), 400
    if len(data['password']) < 6:
        return jsonify({'errors': {'password': 'Password must be at least 6 characters'}}), 400

    if User.query.filter_by(username=data['username'].strip()).first():
        return jsonify({'error': 'Username already taken'}), 422
    if User.query.filter_by(email=data['email'].strip().lower()).first():
        return jsonify({'error': 'Email already taken'}), 422

    try:
        user = User(
            username=data['username'],
            email=data['email'],
            full_name=data['full_name'],
            phone=data.get('phone') or None,
            role=data.get('role', 'distributor'),
            status=data.get('status', 'active'),
            performance_rating=float(data.get('performance_rating') or 0)
        )
        user.set_password(data['password'])
        db.session.add(user)
        db.session.commit()
    except (ValueError, phonenumbers.NumberParseException) as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 422
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create user")
        return jsonify({'error': f'Failed to create user: {str(e)}'}), 500

    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201


@users_bp.route('/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    user = db.get_or_404(User, user_id)
    data = request.get_json(silent=True) or {}

    if data.get('email'):
        taken = User.query.filter(User.email == data['email'].strip().lower(), User.id != user.id).first()
        if taken:
            return jsonify({'error': 'Email already taken'}), 422
    if data.get('username'):
        taken = User.query.filter(User.username == data['username'].strip(), User.id != user.id).first()
        if taken:
            return jsonify({'error': 'Username already taken'}), 422
    if data.get('password') and len(data['password']) < 6:
        return jsonify({'errors': {'password': 'Password must be at least 6 characters'}}), 400

    try:
        for field in ('username', 'email', 'full_name', 'phone', 'role', 'status'):
            if field in data:
                value = data[field]
                if field == 'phone':
                    value = value or None
                setattr(user, field, value)
        if 'performance_rating' in data:
            user.performance_rating = float(data['performance_rating'] or 0)
        if data.get('password'):
            user.set_password(data['password'])
        db.session.commit()
    except (ValueError, phonenumbers.NumberParseException) as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 422
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update user %s", user_id)
        return jsonify({'error': f'Failed to update user: {str(e)}'}), 500

    return jsonify({'message': 'User updated successfully', 'user': user.to_dict()}), 200


@users_bp.route('/<int:user_id>/status', methods=['PATCH'])
@admin_required
def update_user_status(user_id):
    user = db.get_or_404(User, user_id)
    status = (request.get_json(silent=True) or {}).get('status')

    if status not in USER_STATUSES:
        return jsonify({'error': f"Status must be one of: {', '.join(USER_STATUSES)}"}), 400
    if user.id == current_user_id() and status != 'active':
        return jsonify({'error': 'You cannot deactivate your own account'}), 400

    try:
        user.status = status
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update status of user %s", user_id)
        return jsonify({'error': f'Failed to update status: {str(e)}'}), 500

    return jsonify({'message': 'User status updated', 'user': user.to_dict()}), 200


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    user = db.get_or_404(User, user_id)

    if user.id == current_user_id():
        return jsonify({'error': 'You cannot delete your own account'}), 400

    try:
        active_orders = Order.query.filter(
            Order.assigned_distributor_id == user.id,
            Order.status.in_(ACTIVE_ORDER_STATUSES)
        ).count()
        has_history = Order.query.filter(
            or_(Order.assigned_distributor_id == user.id, Order.created_by == user.id)
        ).count() > 0

        if active_orders or has_history:
            # Orders keep pointing at the user, so only deactivate
            user.status = 'inactive'
            db.session.commit()
            return jsonify({
                'message': 'User has orders and was deactivated instead of deleted',
                'user': user.to_dict()
            }), 200

        Notification.query.filter_by(user_id=user.id).delete()
        TokenBlocklist.query.filter_by(user_id=user.id).delete()
        db.session.delete(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete user %s", user_id)
        return jsonify({'error': f'Failed to delete user: {str(e)}'}), 500

    return jsonify({'message': 'User deleted successfully'}), 200
