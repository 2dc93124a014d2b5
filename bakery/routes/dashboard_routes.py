from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify

from bakery.services.dashboard_service import DashboardService
from bakery.utils.helpers import parse_date
from bakery.utils.role_guards import any_role_required

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

DEFAULT_PERIOD_DAYS = 30


def _service_from_args():
    """Build the dashboard for the requested period, the last 30 days by default"""
    date_to = parse_date(request.args.get('date_to'), 'date_to') or datetime.utcnow().date()
    date_from = parse_date(request.args.get('date_from'), 'date_from') or date_to - timedelta(days=DEFAULT_PERIOD_DAYS)
    if date_from > date_to:
        raise ValueError('date_from must not be after date_to')

    currency = (request.args.get('currency') or 'EUR').upper()
    if currency not in ('EUR', 'SYP'):
        raise ValueError('currency must be EUR or SYP')
    return DashboardService(date_from, date_to, currency)


@dashboard_bp.route('/stats', methods=['GET'])
@any_role_required
def get_stats():
    """
    GET /api/dashboard/stats
    Query parameters: date_from, date_to, currency
    """
    try:
        service = _service_from_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(service.stats()), 200


@dashboard_bp.route('/overview', methods=['GET'])
@any_role_required
def get_overview():
    try:
        service = _service_from_args()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'period': {'date_from': service.date_from.isoformat(), 'date_to': service.date_to.isoformat()},
        'currency': service.currency,
        'daily_overview': service.daily_overview()
    }), 200
