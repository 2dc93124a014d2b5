import logging
from datetime import datetime

from flask import Blueprint, request, jsonify, url_for
from sqlalchemy import or_

from extensions import db
from bakery.models import (
    DeliverySchedule, DeliveryTracking, ScheduleStatus, TimeSlot, DeliveryType,
    Order, OrderStatus, Store, User
)
from bakery.services.email_service import EmailService
from bakery.services.order_service import OrderService
from bakery.services.scheduling_service import SchedulingService
from bakery.validators.schedule_validators import ScheduleValidator
from bakery.utils.helpers import (
    get_pagination_args, paginate, parse_date, parse_time, csv_response
)
from bakery.utils.role_guards import (
    staff_required, manager_required, any_role_required, current_role, current_user_id
)

logger = logging.getLogger(__name__)

delivery_bp = Blueprint('delivery', __name__, url_prefix='/api/delivery')

EXPORT_FIELDS = [
    'id', 'order_number', 'store_name', 'scheduled_date', 'scheduled_time_start', 'scheduled_time_end',
    'time_slot', 'delivery_type', 'priority', 'status', 'distributor_name', 'contact_person',
    'contact_phone', 'delivery_address', 'reschedule_count', 'actual_duration_minutes', 'delivery_rating'
]


def _check_distributor(distributor_id):
    if distributor_id is None:
        return None
    distributor = db.session.get(User, distributor_id)
    if not distributor or not distributor.is_distributor:
        return 'Distributor not found'
    return None


def _conflict_response(conflicts):
    return jsonify({
        'error': 'Distributor already has a delivery in this time window',
        'conflicting_schedules': [s.to_dict() for s in conflicts]
    }), 409


def _owns(schedule):
    return current_role() != 'distributor' or schedule.distributor_id == current_user_id()


def _change_status(schedule, new_status, notes=None):
    """Move a schedule through its status flow, log it, and carry the order along"""
    user_id = current_user_id()
    schedule.update_status(new_status)
    db.session.add(DeliveryTracking.create_from_status_change(schedule, new_status, user_id, notes))

    order = schedule.order
    if new_status == ScheduleStatus.IN_PROGRESS and order.status == OrderStatus.CONFIRMED:
        OrderService.change_status(order, OrderStatus.IN_PROGRESS, user_id)
    elif new_status == ScheduleStatus.DELIVERED and order.status == OrderStatus.IN_PROGRESS:
        OrderService.change_status(order, OrderStatus.DELIVERED, user_id, notes)


def _filtered_schedules():
    args = request.args
    query = DeliverySchedule.query

    date_from = parse_date(args.get('date_from'), 'date_from')
    date_to = parse_date(args.get('date_to'), 'date_to')
    if date_from:
        query = query.filter(DeliverySchedule.scheduled_date >= date_from)
    if date_to:
        query = query.filter(DeliverySchedule.scheduled_date <= date_to)

    if args.get('status'):
        query = query.filter(DeliverySchedule.status == ScheduleStatus(args['status']))
    if args.get('time_slot'):
        query = query.filter(DeliverySchedule.time_slot == TimeSlot(args['time_slot']))
    if args.get('delivery_type'):
        query = query.filter(DeliverySchedule.delivery_type == DeliveryType(args['delivery_type']))
    if args.get('distributor_id'):
        query = query.filter(DeliverySchedule.distributor_id == int(args['distributor_id']))

    if args.get('search'):
        term = f"%{args['search']}%"
        query = query.join(Order, DeliverySchedule.order_id == Order.id).join(
            Store, Order.store_id == Store.id
        ).filter(or_(
            Order.order_number.ilike(term),
            DeliverySchedule.contact_person.ilike(term),
            DeliverySchedule.contact_phone.ilike(term),
            Store.name.ilike(term)
        ))

    if current_role() == 'distributor':
        query = query.filter(DeliverySchedule.distributor_id == current_user_id())

    return query


# SCHEDULES
@delivery_bp.route('/schedules', methods=['GET'])
@any_role_required
def get_schedules():
    """
    GET /api/delivery/schedules
    Query parameters: date_from, date_to, status, time_slot, delivery_type,
    distributor_id, search, page, limit
    """
    try:
        page, limit = get_pagination_args()
        query = _filtered_schedules()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    schedules, pagination = paginate(
        query.order_by(DeliverySchedule.scheduled_date.desc(), DeliverySchedule.scheduled_time_start.asc(),
                       DeliverySchedule.id.asc()),
        page, limit
    )
    return jsonify({
        'schedules': [schedule.to_dict() for schedule in schedules],
        'pagination': pagination
    }), 200


@delivery_bp.route('/schedules/<int:schedule_id>', methods=['GET'])
@any_role_required
def get_schedule(schedule_id):
    schedule = db.get_or_404(DeliverySchedule, schedule_id)
    if not _owns(schedule):
        return jsonify({'error': 'This delivery is not assigned to you'}), 403
    return jsonify({'schedule': schedule.to_dict(include_tracking=True)}), 200


@delivery_bp.route('/schedules', methods=['POST'])
@staff_required
def create_schedule():
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = ScheduleValidator.validate(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    order = db.session.get(Order, validated_data['order_id'])
    if order is None:
        return jsonify({'error': 'Order not found'}), 404
    if order.status in (OrderStatus.CANCELLED, OrderStatus.DELIVERED):
        return jsonify({'error': f'Cannot schedule delivery for an order that is {order.status.value}'}), 400

    if 'distributor_id' not in validated_data:
        validated_data['distributor_id'] = order.assigned_distributor_id
    distributor_error = _check_distributor(validated_data['distributor_id'])
    if distributor_error:
        return jsonify({'errors': {'distributor_id': distributor_error}}), 400

    conflicts = SchedulingService.find_conflicts(
        validated_data['scheduled_date'], validated_data['scheduled_time_start'],
        validated_data.get('scheduled_time_end'), validated_data['distributor_id']
    )
    if conflicts:
        return _conflict_response(conflicts)

    store = order.store
    validated_data.setdefault('delivery_address', order.delivery_address or store.address)
    validated_data.setdefault('contact_person', order.customer_name or store.owner_name)
    validated_data.setdefault('contact_phone', order.customer_phone or store.phone)
    validated_data.setdefault('contact_email', order.customer_email or store.email)

    try:
        schedule = DeliverySchedule(
            created_by=current_user_id(),
            max_reschedules=SchedulingService.max_reschedules(),
            **validated_data
        )
        db.session.add(schedule)
        db.session.flush()
        db.session.add(DeliveryTracking.create_from_status_change(
            schedule, ScheduleStatus.SCHEDULED, current_user_id(), 'Delivery scheduled'
        ))
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create delivery schedule")
        return jsonify({'error': f'Failed to create delivery schedule: {str(e)}'}), 500

    if schedule.contact_email and schedule.confirmation_required:
        window = schedule.scheduled_time_start.strftime('%H:%M')
        if schedule.scheduled_time_end:
            window = f"{window}-{schedule.scheduled_time_end.strftime('%H:%M')}"
        EmailService.send_delivery_scheduled(
            schedule.contact_email, order.order_number, schedule.scheduled_date.isoformat(), window,
            url_for('delivery.confirm_schedule', token=schedule.confirmation_token, _external=True)
        )

    return jsonify({'message': 'Delivery scheduled successfully', 'schedule': schedule.to_dict()}), 201


@delivery_bp.route('/schedules/<int:schedule_id>', methods=['PUT'])
@staff_required
def update_schedule(schedule_id):
    schedule = db.get_or_404(DeliverySchedule, schedule_id)
    if not schedule.can_edit():
        return jsonify({'error': f'Cannot edit a schedule that is {schedule.status.value}'}), 400

    data = dict(request.get_json(silent=True) or {})
    data.pop('order_id', None)
    is_valid, validated_data, errors = ScheduleValidator.validate(data, partial=True)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    if 'distributor_id' in validated_data:
        distributor_error = _check_distributor(validated_data['distributor_id'])
        if distributor_error:
            return jsonify({'errors': {'distributor_id': distributor_error}}), 400

    on_date = validated_data.get('scheduled_date', schedule.scheduled_date)
    start = validated_data.get('scheduled_time_start', schedule.scheduled_time_start)
    end = validated_data.get('scheduled_time_end', schedule.scheduled_time_end)
    if end and end <= start:
        return jsonify({'errors': {'scheduled_time_end': 'End time must be after start time'}}), 400

    conflicts = SchedulingService.find_conflicts(
        on_date, start, end, validated_data.get('distributor_id', schedule.distributor_id), exclude_id=schedule.id
    )
    if conflicts:
        return _conflict_response(conflicts)

    try:
        for field, value in validated_data.items():
            setattr(schedule, field, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update delivery schedule %s", schedule_id)
        return jsonify({'error': f'Failed to update delivery schedule: {str(e)}'}), 500

    return jsonify({'message': 'Delivery schedule updated', 'schedule': schedule.to_dict()}), 200


@delivery_bp.route('/schedules/<int:schedule_id>', methods=['DELETE'])
@manager_required
def delete_schedule(schedule_id):
    schedule = db.get_or_404(DeliverySchedule, schedule_id)
    if schedule.status == ScheduleStatus.IN_PROGRESS:
        return jsonify({'error': 'Cannot delete a delivery that is in progress'}), 400

    try:
        DeliverySchedule.query.filter_by(rescheduled_from=schedule.id).update({'rescheduled_from': None})
        db.session.delete(schedule)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete delivery schedule %s", schedule_id)
        return jsonify({'error': f'Failed to delete delivery schedule: {str(e)}'}), 500

    return jsonify({'message': 'Delivery schedule deleted'}), 200


@delivery_bp.route('/schedules/<int:schedule_id>/reschedule', methods=['POST'])
@staff_required
def reschedule(schedule_id):
    schedule = db.get_or_404(DeliverySchedule, schedule_id)
    data = request.get_json(silent=True) or {}

    if (schedule.reschedule_count or 0) >= (schedule.max_reschedules or 0):
        return jsonify({'error': f'Maximum reschedules ({schedule.max_reschedules}) reached'}), 400
    if not schedule.can_reschedule():
        return jsonify({'error': f'Cannot reschedule a delivery that is {schedule.status.value}'}), 400
    if not data.get('reason'):
        return jsonify({'errors': {'reason': 'A reason is required'}}), 400

    fields = {
        'scheduled_date': data.get('scheduled_date'),
        'scheduled_time_start': data.get('scheduled_time_start'),
    }
    for optional in ('scheduled_time_end', 'time_slot', 'distributor_id'):
        if optional in data:
            fields[optional] = data[optional]
    is_valid, validated_data, errors = ScheduleValidator.validate(fields, partial=True)
    if not is_valid or not validated_data.get('scheduled_date') or not validated_data.get('scheduled_time_start'):
        errors = errors or {'schedule': 'New scheduled_date and scheduled_time_start are required'}
        return jsonify({'errors': errors}), 400

    distributor_id = validated_data.get('distributor_id', schedule.distributor_id)
    distributor_error = _check_distributor(distributor_id)
    if distributor_error:
        return jsonify({'errors': {'distributor_id': distributor_error}}), 400

    conflicts = SchedulingService.find_conflicts(
        validated_data['scheduled_date'], validated_data['scheduled_time_start'],
        validated_data.get('scheduled_time_end'), distributor_id, exclude_id=schedule.id
    )
    if conflicts:
        return _conflict_response(conflicts)

    try:
        new_schedule = DeliverySchedule(
            order_id=schedule.order_id,
            distributor_id=distributor_id,
            scheduled_date=validated_data['scheduled_date'],
            scheduled_time_start=validated_data['scheduled_time_start'],
            scheduled_time_end=validated_data.get('scheduled_time_end'),
            time_slot=validated_data['time_slot'],
            delivery_type=schedule.delivery_type,
            priority=schedule.priority,
            delivery_address=schedule.delivery_address,
            delivery_instructions=schedule.delivery_instructions,
            contact_person=schedule.contact_person,
            contact_phone=schedule.contact_phone,
            contact_email=schedule.contact_email,
            delivery_fee_eur=schedule.delivery_fee_eur,
            confirmation_required=schedule.confirmation_required,
            estimated_duration_minutes=schedule.estimated_duration_minutes,
            reschedule_count=(schedule.reschedule_count or 0) + 1,
            max_reschedules=schedule.max_reschedules,
            reschedule_reason=data['reason'],
            rescheduled_from=schedule.id,
            created_by=current_user_id()
        )
        schedule.reschedule_reason = data['reason']
        _change_status(schedule, ScheduleStatus.RESCHEDULED, f"Rescheduled: {data['reason']}")
        db.session.add(new_schedule)
        db.session.flush()
        db.session.add(DeliveryTracking.create_from_status_change(
            new_schedule, ScheduleStatus.SCHEDULED, current_user_id(), f'Rescheduled from #{schedule.id}'
        ))
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to reschedule delivery %s", schedule_id)
        return jsonify({'error': f'Failed to reschedule delivery: {str(e)}'}), 500

    return jsonify({
        'message': 'Delivery rescheduled',
        'schedule': new_schedule.to_dict(),
        'previous_schedule': schedule.to_dict()
    }), 201


@delivery_bp.route('/schedules/availability', methods=['GET'])
@any_role_required
def check_availability():
    """
    GET /api/delivery/schedules/availability
    Query parameters: date, time_start, time_end, distributor_id, exclude_id
    """
    try:
        on_date = parse_date(request.args.get('date'))
        start = parse_time(request.args.get('time_start'), 'time_start')
        end = parse_time(request.args.get('time_end'), 'time_end')
        distributor_id = request.args.get('distributor_id', type=int)
        exclude_id = request.args.get('exclude_id', type=int)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if on_date is None or start is None:
        return jsonify({'error': 'date and time_start are required'}), 400
    if end and end <= start:
        return jsonify({'error': 'time_end must be after time_start'}), 400

    conflicts = SchedulingService.find_conflicts(on_date, start, end, distributor_id, exclude_id)
    return jsonify({
        'available': not conflicts,
        'conflicting_schedules': [s.to_dict() for s in conflicts]
    }), 200


@delivery_bp.route('/capacity', methods=['GET'])
@any_role_required
def get_capacity():
    try:
        on_date = parse_date(request.args.get('date')) or datetime.utcnow().date()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(SchedulingService.capacity(on_date)), 200


# TRACKING
@delivery_bp.route('/tracking/live', methods=['GET'])
@any_role_required
def live_tracking():
    query = DeliverySchedule.query.filter(
        DeliverySchedule.scheduled_date == datetime.utcnow().date(),
        DeliverySchedule.status == ScheduleStatus.IN_PROGRESS
    )
    if current_role() == 'distributor':
        query = query.filter(DeliverySchedule.distributor_id == current_user_id())

    deliveries = []
    for schedule in query.order_by(DeliverySchedule.scheduled_time_start.asc()).all():
        latest = schedule.latest_tracking()
        deliveries.append(dict(schedule.to_dict(), latest_tracking=latest.to_dict() if latest else None))

    return jsonify({'deliveries': deliveries, 'count': len(deliveries)}), 200


@delivery_bp.route('/tracking/<int:schedule_id>/status', methods=['PUT'])
@staff_required
def update_tracking_status(schedule_id):
    schedule = db.get_or_404(DeliverySchedule, schedule_id)
    if not _owns(schedule):
        return jsonify({'error': 'This delivery is not assigned to you'}), 403

    data = request.get_json(silent=True) or {}
    try:
        new_status = ScheduleStatus(data.get('status'))
    except ValueError:
        return jsonify({'error': f"Status must be one of: {', '.join(s.value for s in ScheduleStatus)}"}), 400

    is_valid, rating, errors = ScheduleValidator.validate_rating(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    try:
        _change_status(schedule, new_status, data.get('notes'))
        if rating:
            schedule.delivery_rating = rating['delivery_rating']
        if data.get('delivery_feedback'):
            schedule.delivery_feedback = data['delivery_feedback']
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update delivery status %s", schedule_id)
        return jsonify({'error': f'Failed to update delivery status: {str(e)}'}), 500

    return jsonify({
        'message': f'Delivery status updated to {new_status.value}',
        'schedule': schedule.to_dict(include_tracking=True)
    }), 200


@delivery_bp.route('/tracking/<int:schedule_id>/location', methods=['POST'])
@staff_required
def update_tracking_location(schedule_id):
    schedule = db.get_or_404(DeliverySchedule, schedule_id)
    if not _owns(schedule):
        return jsonify({'error': 'This delivery is not assigned to you'}), 403

    is_valid, location, errors = ScheduleValidator.validate_location(request.get_json(silent=True) or {})
    if not is_valid:
        return jsonify({'errors': errors}), 400

    try:
        tracking = DeliveryTracking(
            schedule_id=schedule.id,
            status=schedule.status,
            recorded_by=current_user_id(),
            **location
        )
        db.session.add(tracking)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to record location for delivery %s", schedule_id)
        return jsonify({'error': f'Failed to record location: {str(e)}'}), 500

    return jsonify({'message': 'Location recorded', 'tracking': tracking.to_dict()}), 201


# REPORTING
@delivery_bp.route('/schedules/analytics', methods=['GET'])
@any_role_required
def schedule_analytics():
    try:
        date_from = parse_date(request.args.get('date_from'), 'date_from')
        date_to = parse_date(request.args.get('date_to'), 'date_to')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    query = DeliverySchedule.query
    if date_from:
        query = query.filter(DeliverySchedule.scheduled_date >= date_from)
    if date_to:
        query = query.filter(DeliverySchedule.scheduled_date <= date_to)
    schedules = query.all()

    total = len(schedules)
    by_status = {status.value: 0 for status in ScheduleStatus}
    by_time_slot = {slot.value: {'total': 0, 'delivered': 0} for slot in TimeSlot}
    for schedule in schedules:
        by_status[schedule.status.value] += 1
        by_time_slot[schedule.time_slot.value]['total'] += 1
        if schedule.status == ScheduleStatus.DELIVERED:
            by_time_slot[schedule.time_slot.value]['delivered'] += 1

    durations = [s.actual_duration_minutes for s in schedules if s.actual_duration_minutes is not None]
    ratings = [s.delivery_rating for s in schedules if s.delivery_rating]

    return jsonify({
        'period': {
            'date_from': date_from.isoformat() if date_from else None,
            'date_to': date_to.isoformat() if date_to else None
        },
        'total_schedules': total,
        'by_status': by_status,
        'completion_rate': round(by_status['delivered'] / total * 100, 2) if total else 0,
        'average_duration_minutes': round(sum(durations) / len(durations), 2) if durations else 0,
        'average_rating': round(sum(ratings) / len(ratings), 2) if ratings else 0,
        'by_time_slot': by_time_slot
    }), 200


@delivery_bp.route('/schedules/export', methods=['GET'])
@manager_required
def export_schedules():
    try:
        schedules = _filtered_schedules().order_by(
            DeliverySchedule.scheduled_date.desc(), DeliverySchedule.scheduled_time_start.asc()
        ).all()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    rows = []
    for schedule in schedules:
        row = schedule.to_dict()
        row['order_number'] = row['order']['order_number'] if row['order'] else None
        row['store_name'] = row['store']['name'] if row['store'] else None
        row['distributor_name'] = schedule.distributor.full_name if schedule.distributor else None
        rows.append(row)

    filename = f"delivery_schedules_{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return csv_response(rows, EXPORT_FIELDS, filename)


@delivery_bp.route('/schedules/bulk-update', methods=['POST'])
@manager_required
def bulk_update_schedules():
    data = request.get_json(silent=True) or {}
    schedule_ids = data.get('schedule_ids')
    if not isinstance(schedule_ids, list) or not schedule_ids:
        return jsonify({'errors': {'schedule_ids': 'A non-empty list of schedule ids is required'}}), 400
    try:
        new_status = ScheduleStatus(data.get('status'))
    except ValueError:
        return jsonify({'error': f"Status must be one of: {', '.join(s.value for s in ScheduleStatus)}"}), 400

    updated = []
    failed = []
    try:
        for schedule_id in schedule_ids:
            schedule = db.session.get(DeliverySchedule, schedule_id)
            if schedule is None:
                failed.append({'id': schedule_id, 'error': 'Schedule not found'})
                continue
            try:
                _change_status(schedule, new_status, data.get('notes'))
            except ValueError as e:
                failed.append({'id': schedule_id, 'error': str(e)})
                continue
            updated.append(schedule_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Bulk schedule update failed")
        return jsonify({'error': f'Failed to update schedules: {str(e)}'}), 500

    return jsonify({
        'message': f'{len(updated)} schedule(s) updated',
        'updated': updated,
        'failed': failed
    }), 200


@delivery_bp.route('/schedules/confirm/<string:token>', methods=['POST'])
def confirm_schedule(token):
    """Public endpoint the store uses to confirm a delivery window"""
    schedule = DeliverySchedule.query.filter_by(confirmation_token=token).first()
    if schedule is None:
        return jsonify({'error': 'Invalid confirmation link'}), 404
    if schedule.status != ScheduleStatus.SCHEDULED:
        return jsonify({'error': f'Delivery is already {schedule.status.value}'}), 400

    data = request.get_json(silent=True) or {}
    try:
        schedule.update_status(ScheduleStatus.CONFIRMED)
        schedule.confirmed_by = (data.get('confirmed_by') or '').strip() or schedule.contact_person
        schedule.customer_notes = data.get('customer_notes')
        db.session.add(DeliveryTracking.create_from_status_change(
            schedule, ScheduleStatus.CONFIRMED, notes=f'Confirmed by {schedule.confirmed_by or "store"}'
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to confirm delivery %s", schedule.id)
        return jsonify({'error': f'Failed to confirm delivery: {str(e)}'}), 500

    return jsonify({'message': 'Delivery confirmed, thank you', 'schedule': schedule.to_dict()}), 200
