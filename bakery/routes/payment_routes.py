import logging
from datetime import datetime
from decimal import Decimal

from flask import Blueprint, request, jsonify

from extensions import db
from bakery.models import (
    Payment, PaymentStatus, PaymentMethod, VerificationStatus, Store, Order
)
from bakery.services.payment_service import PaymentService
from bakery.services.pricing_service import PricingService
from bakery.validators.payment_validators import PaymentValidator
from bakery.utils.helpers import get_pagination_args, paginate, parse_date, csv_response, to_float
from bakery.utils.role_guards import (
    staff_required, manager_required, any_role_required, current_role, current_user_id, get_current_user
)

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__, url_prefix='/api/payments')

EXPORT_FIELDS = [
    'payment_number', 'payment_date', 'store_name', 'order_id', 'amount_eur', 'amount_syp', 'exchange_rate',
    'value_eur', 'currency', 'payment_method', 'payment_type', 'status', 'verification_status',
    'payment_reference', 'distributor_name', 'created_by_name'
]


def _filtered_payments():
    query = Payment.query
    args = request.args

    for field in ('store_id', 'order_id', 'distributor_id'):
        if args.get(field):
            query = query.filter(getattr(Payment, field) == int(args[field]))
    if args.get('status'):
        query = query.filter(Payment.status == PaymentStatus(args['status']))
    if args.get('payment_method'):
        query = query.filter(Payment.payment_method == PaymentMethod(args['payment_method']))

    date_from = parse_date(args.get('date_from'), 'date_from')
    date_to = parse_date(args.get('date_to'), 'date_to')
    if date_from:
        query = query.filter(Payment.payment_date >= date_from)
    if date_to:
        query = query.filter(Payment.payment_date <= date_to)

    if current_role() == 'distributor':
        query = query.filter(Payment.distributor_id == current_user_id())

    return query


@payments_bp.route('/', methods=['GET'])
@any_role_required
def get_payments():
    """
    GET /api/payments
    Query parameters: store_id, order_id, status, payment_method,
    distributor_id, date_from, date_to, page, limit
    """
    try:
        page, limit = get_pagination_args()
        query = _filtered_payments()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    payments, pagination = paginate(
        query.order_by(Payment.payment_date.desc(), Payment.id.desc()), page, limit
    )
    return jsonify({
        'payments': [payment.to_dict() for payment in payments],
        'pagination': pagination
    }), 200


@payments_bp.route('/statistics', methods=['GET'])
@any_role_required
def payment_statistics():
    try:
        payments = _filtered_payments().all()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    by_method = {}
    by_status = {status.value: 0 for status in PaymentStatus}
    by_currency = {}
    total_completed = Decimal('0')

    for payment in payments:
        by_status[payment.status.value] += 1
        if payment.status != PaymentStatus.COMPLETED:
            continue
        value = payment.value_in_eur()
        total_completed += value

        method = by_method.setdefault(payment.payment_method.value, {'count': 0, 'amount_eur': Decimal('0')})
        method['count'] += 1
        method['amount_eur'] += value

        currency = by_currency.setdefault(payment.currency, {
            'count': 0, 'amount_eur': Decimal('0'), 'amount_syp': Decimal('0')
        })
        currency['count'] += 1
        currency['amount_eur'] += Decimal(str(payment.amount_eur or 0))
        currency['amount_syp'] += Decimal(str(payment.amount_syp or 0))

    return jsonify({
        'total_payments': len(payments),
        'total_completed_eur': round(float(total_completed), 2),
        'by_status': by_status,
        'by_method': {k: {'count': v['count'], 'amount_eur': round(float(v['amount_eur']), 2)}
                      for k, v in by_method.items()},
        'by_currency': {k: {key: (round(float(val), 2) if key != 'count' else val) for key, val in v.items()}
                        for k, v in by_currency.items()},
        'pending_verification': len([p for p in payments
                                     if p.verification_status == VerificationStatus.PENDING
                                     and p.status == PaymentStatus.COMPLETED])
    }), 200


@payments_bp.route('/export', methods=['GET'])
@manager_required
def export_payments():
    try:
        payments = _filtered_payments().order_by(Payment.payment_date.desc(), Payment.id.desc()).all()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    filename = f"payments_{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return csv_response([p.to_dict() for p in payments], EXPORT_FIELDS, filename)


@payments_bp.route('/store/<int:store_id>', methods=['GET'])
@any_role_required
def get_store_payments(store_id):
    store = db.get_or_404(Store, store_id)
    payments = store.payments.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()
    completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]

    return jsonify({
        'store': store.to_summary(),
        'payments': [p.to_dict() for p in payments],
        'summary': {
            'total_payments': len(payments),
            'completed_payments': len(completed),
            'total_paid_eur': round(float(sum((p.value_in_eur() for p in completed), Decimal('0'))), 2),
            'total_purchases_eur': to_float(store.total_purchases_eur),
            'current_balance_eur': to_float(store.current_balance_eur),
            'credit_limit_eur': to_float(store.credit_limit_eur),
            'last_payment_date': store.last_payment_date.isoformat() if store.last_payment_date else None
        }
    }), 200


@payments_bp.route('/<int:payment_id>', methods=['GET'])
@any_role_required
def get_payment(payment_id):
    payment = db.get_or_404(Payment, payment_id)
    if current_role() == 'distributor' and payment.distributor_id != current_user_id():
        return jsonify({'error': 'You did not record this payment'}), 403
    return jsonify({'payment': payment.to_dict()}), 200


@payments_bp.route('/', methods=['POST'])
@staff_required
def create_payment():
    """
    Record a payment from a store
    POST /api/payments
    """
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = PaymentValidator.validate(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    store = db.session.get(Store, validated_data['store_id'])
    if store is None:
        return jsonify({'errors': {'store_id': 'Store not found'}}), 400

    order = None
    if validated_data.get('order_id'):
        order = db.session.get(Order, validated_data['order_id'])
        if order is None:
            return jsonify({'errors': {'order_id': 'Order not found'}}), 400
        if order.store_id != store.id:
            return jsonify({'errors': {'order_id': 'Order does not belong to this store'}}), 400

    user = get_current_user()
    amount_eur = validated_data.get('amount_eur', Decimal('0'))
    amount_syp = validated_data.get('amount_syp', Decimal('0'))

    try:
        payment_number = Payment.generate_payment_number()
        payment = Payment(
            payment_number=payment_number,
            store=store,
            store_name=store.name,
            order=order,
            distributor_id=user.id if user.is_distributor else None,
            amount_eur=amount_eur,
            amount_syp=amount_syp,
            exchange_rate=validated_data.get('exchange_rate') or PricingService.exchange_rate(),
            currency=PaymentValidator.currency_for(amount_eur, amount_syp),
            payment_method=validated_data.get('payment_method', PaymentMethod.CASH),
            payment_date=validated_data.get('payment_date') or datetime.utcnow().date(),
            payment_reference=validated_data.get('payment_reference'),
            notes=validated_data.get('notes'),
            status=PaymentStatus.PENDING,
            verification_status=VerificationStatus.PENDING,
            created_by=user.id,
            created_by_name=user.full_name
        )
        if 'payment_type' in validated_data:
            payment.payment_type = validated_data['payment_type']
        db.session.add(payment)
        db.session.flush()

        if validated_data.get('status') == PaymentStatus.COMPLETED:
            PaymentService.record_completed(payment)

        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create payment")
        return jsonify({'error': f'Failed to create payment: {str(e)}'}), 500

    return jsonify({'message': 'Payment recorded successfully', 'payment': payment.to_dict()}), 201


@payments_bp.route('/<int:payment_id>', methods=['PUT'])
@staff_required
def update_payment(payment_id):
    payment = db.get_or_404(Payment, payment_id)
    if not payment.can_edit():
        return jsonify({'error': f'Cannot edit a payment that is {payment.status.value}'}), 400

    data = dict(request.get_json(silent=True) or {})
    data.pop('status', None)
    data.pop('store_id', None)
    is_valid, validated_data, errors = PaymentValidator.validate(data, partial=True, current=payment)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    if 'order_id' in validated_data and validated_data['order_id'] is not None:
        order = db.session.get(Order, validated_data['order_id'])
        if order is None or order.store_id != payment.store_id:
            return jsonify({'errors': {'order_id': 'Order not found for this store'}}), 400

    try:
        for field, value in validated_data.items():
            setattr(payment, field, value)
        if 'amount_eur' in validated_data or 'amount_syp' in validated_data:
            payment.currency = PaymentValidator.currency_for(payment.amount_eur, payment.amount_syp)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update payment %s", payment_id)
        return jsonify({'error': f'Failed to update payment: {str(e)}'}), 500

    return jsonify({'message': 'Payment updated successfully', 'payment': payment.to_dict()}), 200


@payments_bp.route('/<int:payment_id>/status', methods=['PATCH'])
@staff_required
def update_payment_status(payment_id):
    payment = db.get_or_404(Payment, payment_id)
    data = request.get_json(silent=True) or {}
    try:
        new_status = PaymentStatus(data.get('status'))
    except ValueError:
        return jsonify({'error': f"Status must be one of: {', '.join(s.value for s in PaymentStatus)}"}), 400

    try:
        PaymentService.change_status(payment, new_status)
        if data.get('notes'):
            payment.notes = f"{payment.notes}\n{data['notes']}" if payment.notes else data['notes']
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update status of payment %s", payment_id)
        return jsonify({'error': f'Failed to update payment status: {str(e)}'}), 500

    return jsonify({
        'message': f'Payment status updated to {new_status.value}',
        'payment': payment.to_dict(),
        'order_payment_status': payment.order.payment_status.value if payment.order else None
    }), 200


@payments_bp.route('/<int:payment_id>/verify', methods=['PATCH'])
@manager_required
def verify_payment(payment_id):
    payment = db.get_or_404(Payment, payment_id)
    data = request.get_json(silent=True) or {}
    try:
        verification = VerificationStatus(data.get('verification_status', 'verified'))
    except ValueError:
        return jsonify({'error': 'verification_status must be verified or rejected'}), 400
    if verification == VerificationStatus.PENDING:
        return jsonify({'error': 'verification_status must be verified or rejected'}), 400

    try:
        payment.verification_status = verification
        payment.verified_by = current_user_id()
        payment.verified_at = datetime.utcnow()
        if data.get('notes'):
            payment.notes = f"{payment.notes}\n{data['notes']}" if payment.notes else data['notes']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to verify payment %s", payment_id)
        return jsonify({'error': f'Failed to verify payment: {str(e)}'}), 500

    return jsonify({'message': f'Payment {verification.value}', 'payment': payment.to_dict()}), 200


@payments_bp.route('/<int:payment_id>', methods=['DELETE'])
@manager_required
def delete_payment(payment_id):
    payment = db.get_or_404(Payment, payment_id)
    if not payment.can_delete():
        return jsonify({'error': f'Cannot delete a payment that is {payment.status.value}'}), 400

    try:
        db.session.delete(payment)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete payment %s", payment_id)
        return jsonify({'error': f'Failed to delete payment: {str(e)}'}), 500

    return jsonify({'message': 'Payment deleted successfully'}), 200
