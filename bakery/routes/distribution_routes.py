import logging
from datetime import date, datetime

from flask import Blueprint, request, jsonify

from extensions import db
from bakery.models import Order, OrderStatus, User
from bakery.models.order import ACTIVE_ORDER_STATUSES, PRIORITY_RANK
from bakery.services.distribution_service import DistributionService, NoDistributorAvailable
from bakery.utils.role_guards import manager_required, staff_required, current_role, current_user_id

logger = logging.getLogger(__name__)

distribution_bp = Blueprint('simple_distribution', __name__, url_prefix='/api/simple-distribution')


def _work_order(order):
    # urgent first, undated deliveries after dated ones
    return (
        PRIORITY_RANK.get(order.priority, len(PRIORITY_RANK)),
        order.delivery_date or date.max,
        order.created_at or datetime.max
    )


@distribution_bp.route('/orders/<int:order_id>/assign', methods=['POST'])
@manager_required
def assign_order(order_id):
    """
    POST /api/simple-distribution/orders/<id>/assign
    Body: distributor_id (optional, least-loaded distributor when omitted)
    """
    order = db.get_or_404(Order, order_id)
    distributor_id = (request.get_json(silent=True) or {}).get('distributor_id')

    try:
        if distributor_id is not None:
            distributor_id = int(distributor_id)
        distributor = DistributionService.assign(order, distributor_id)
        db.session.commit()
    except NoDistributorAvailable as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 409
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to assign order %s", order_id)
        return jsonify({'error': f'Failed to assign order: {str(e)}'}), 500

    return jsonify({
        'message': f'Order assigned to {distributor.full_name}',
        'order': order.to_dict(),
        'distributor': distributor.to_summary(),
        'auto_assigned': distributor_id is None
    }), 200


@distribution_bp.route('/orders/<int:order_id>/unassign', methods=['POST'])
@manager_required
def unassign_order(order_id):
    order = db.get_or_404(Order, order_id)
    try:
        DistributionService.unassign(order)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to unassign order %s", order_id)
        return jsonify({'error': f'Failed to unassign order: {str(e)}'}), 500

    return jsonify({'message': 'Order unassigned', 'order': order.to_dict()}), 200


@distribution_bp.route('/distributors/<int:distributor_id>/orders', methods=['GET'])
@staff_required
def get_distributor_orders(distributor_id):
    if current_role() == 'distributor' and distributor_id != current_user_id():
        return jsonify({'error': 'You can only view your own orders'}), 403

    distributor = db.get_or_404(User, distributor_id)
    if not distributor.is_distributor:
        return jsonify({'error': 'Distributor not found'}), 404

    query = Order.query.filter_by(assigned_distributor_id=distributor.id)
    status = request.args.get('status')
    if status == 'all':
        pass
    elif status:
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            return jsonify({'error': 'Invalid status filter'}), 400
    else:
        query = query.filter(Order.status.in_(ACTIVE_ORDER_STATUSES))

    orders = sorted(query.all(), key=_work_order)
    return jsonify({
        'distributor': distributor.to_summary(),
        'orders': [order.to_dict() for order in orders],
        'count': len(orders)
    }), 200


@distribution_bp.route('/stats', methods=['GET'])
@manager_required
def distribution_stats():
    total = Order.query.count()
    assigned = Order.query.filter(Order.assigned_distributor_id.isnot(None)).count()
    unassigned_pending = Order.query.filter(
        Order.assigned_distributor_id.is_(None),
        Order.status.in_((OrderStatus.DRAFT, OrderStatus.CONFIRMED))
    ).count()

    return jsonify({
        'total_orders': total,
        'assigned_orders': assigned,
        'unassigned_pending': unassigned_pending,
        'distributors': DistributionService.distributor_stats()
    }), 200
