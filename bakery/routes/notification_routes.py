import logging

from flask import Blueprint, request, jsonify

from extensions import db
from bakery.models import Notification
from bakery.utils.helpers import get_pagination_args, paginate, parse_bool
from bakery.utils.role_guards import any_role_required, current_user_id

logger = logging.getLogger(__name__)

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notifications_bp.route('/', methods=['GET'])
@any_role_required
def get_notifications():
    try:
        page, limit = get_pagination_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    query = Notification.query.filter_by(user_id=current_user_id())
    if parse_bool(request.args.get('unread_only')):
        query = query.filter_by(is_read=False)

    notifications, pagination = paginate(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()), page, limit
    )
    return jsonify({
        'notifications': [n.to_dict() for n in notifications],
        'pagination': pagination
    }), 200


@notifications_bp.route('/unread-count', methods=['GET'])
@any_role_required
def unread_count():
    count = Notification.query.filter_by(user_id=current_user_id(), is_read=False).count()
    return jsonify({'unread_count': count}), 200


@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@any_role_required
def mark_read(notification_id):
    notification = db.get_or_404(Notification, notification_id)
    if notification.user_id != current_user_id():
        return jsonify({'error': 'Not your notification'}), 403

    try:
        notification.mark_read()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to mark notification %s read", notification_id)
        return jsonify({'error': f'Failed to update notification: {str(e)}'}), 500

    return jsonify({'notification': notification.to_dict()}), 200


@notifications_bp.route('/read-all', methods=['PATCH'])
@any_role_required
def mark_all_read():
    try:
        unread = Notification.query.filter_by(user_id=current_user_id(), is_read=False).all()
        for notification in unread:
            notification.mark_read()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to mark notifications read")
        return jsonify({'error': f'Failed to update notifications: {str(e)}'}), 500

    return jsonify({'message': f'{len(unread)} notification(s) marked as read'}), 200
