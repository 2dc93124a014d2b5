import logging
from datetime import datetime
from decimal import Decimal

from flask import Blueprint, request, jsonify

from extensions import db
from bakery.models import (
    DistributionTrip, StoreVisit, TripStatus, VisitStatus, Store, Order, User,
    Payment, PaymentMethod, PaymentType, PaymentStatus
)
from bakery.services.maps_service import MapsService
from bakery.services.order_service import OrderService
from bakery.services.payment_service import PaymentService
from bakery.services.pricing_service import PricingService
from bakery.validators.schedule_validators import TripValidator
from bakery.utils.helpers import get_pagination_args, paginate, parse_date, parse_bool, to_decimal
from bakery.utils.role_guards import (
    staff_required, manager_required, any_role_required, current_role, current_user_id, get_current_user
)

logger = logging.getLogger(__name__)

trips_bp = Blueprint('trips', __name__, url_prefix='/api/distribution/trips')


def _active_distributor(distributor_id):
    distributor = db.session.get(User, distributor_id)
    if not distributor or not distributor.is_distributor or not distributor.is_active:
        return None
    return distributor


def _owns(trip):
    return current_role() != 'distributor' or trip.distributor_id == current_user_id()


def _filtered_trips():
    args = request.args
    query = DistributionTrip.query

    if args.get('distributor_id'):
        query = query.filter(DistributionTrip.distributor_id == int(args['distributor_id']))
    if args.get('trip_status'):
        query = query.filter(DistributionTrip.trip_status == TripStatus(args['trip_status']))

    date_from = parse_date(args.get('date_from'), 'date_from')
    date_to = parse_date(args.get('date_to'), 'date_to')
    if date_from:
        query = query.filter(DistributionTrip.trip_date >= date_from)
    if date_to:
        query = query.filter(DistributionTrip.trip_date <= date_to)

    if current_role() == 'distributor':
        query = query.filter(DistributionTrip.distributor_id == current_user_id())
    return query


def _visited_points(trip):
    """Coordinates of the stores actually visited, in visit order"""
    points = []
    for visit in trip.visits:
        if visit.visit_status not in (VisitStatus.COMPLETED, VisitStatus.FAILED):
            continue
        if visit.store is not None and visit.store.has_coordinates:
            points.append(visit.store.coordinates)
    return points


@trips_bp.route('/', methods=['GET'])
@any_role_required
def get_trips():
    """
    GET /api/distribution/trips
    Query parameters: distributor_id, trip_status, date_from, date_to, page, limit
    """
    try:
        page, limit = get_pagination_args()
        query = _filtered_trips()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    trips, pagination = paginate(
        query.order_by(DistributionTrip.trip_date.desc(), DistributionTrip.id.desc()), page, limit
    )
    return jsonify({'trips': [trip.to_dict() for trip in trips], 'pagination': pagination}), 200


@trips_bp.route('/today', methods=['GET'])
@any_role_required
def get_today_trips():
    query = DistributionTrip.query.filter(
        DistributionTrip.trip_date == datetime.utcnow().date(),
        DistributionTrip.trip_status.in_((TripStatus.PLANNED, TripStatus.IN_PROGRESS))
    )
    if current_role() == 'distributor':
        query = query.filter(DistributionTrip.distributor_id == current_user_id())

    trips = query.order_by(DistributionTrip.id.asc()).all()
    return jsonify({'trips': [trip.to_dict(include_visits=True) for trip in trips], 'count': len(trips)}), 200


@trips_bp.route('/statistics', methods=['GET'])
@any_role_required
def trip_statistics():
    try:
        trips = _filtered_trips().all()
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    by_status = {status.value: 0 for status in TripStatus}
    total_distance = Decimal('0')
    durations = []
    visited = 0
    successful = 0

    for trip in trips:
        by_status[trip.trip_status.value] += 1
        total_distance += Decimal(str(trip.total_distance or 0))
        if trip.trip_status == TripStatus.COMPLETED and trip.total_duration is not None:
            durations.append(trip.total_duration)
        for visit in trip.visits:
            if visit.visit_status in (VisitStatus.COMPLETED, VisitStatus.FAILED):
                visited += 1
                if visit.visit_status == VisitStatus.COMPLETED:
                    successful += 1

    return jsonify({
        'total_trips': len(trips),
        'by_status': by_status,
        'total_distance_km': round(float(total_distance), 2),
        'average_duration_minutes': round(sum(durations) / len(durations), 2) if durations else 0,
        'total_visits': visited,
        'successful_visits': successful,
        'visit_success_rate': round(successful / visited * 100, 2) if visited else 0
    }), 200


@trips_bp.route('/<int:trip_id>', methods=['GET'])
@any_role_required
def get_trip(trip_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    if not _owns(trip):
        return jsonify({'error': 'This trip is not assigned to you'}), 403
    return jsonify({'trip': trip.to_dict(include_visits=True)}), 200


@trips_bp.route('/', methods=['POST'])
@manager_required
def create_trip():
    data = request.get_json(silent=True) or {}
    is_valid, validated_data, errors = TripValidator.validate_create(data)
    if not is_valid:
        return jsonify({'errors': errors}), 400

    if _active_distributor(validated_data['distributor_id']) is None:
        return jsonify({'errors': {'distributor_id': 'Distributor not found or not active'}}), 400

    visits = []
    visit_errors = {}
    for position, entry in enumerate(validated_data['store_visits']):
        store = db.session.get(Store, entry['store_id'])
        if store is None:
            visit_errors[str(position)] = f"Store {entry['store_id']} not found"
            continue
        order = None
        if entry['order_id'] is not None:
            order = db.session.get(Order, entry['order_id'])
            if order is None or order.store_id != store.id:
                visit_errors[str(position)] = f"Order {entry['order_id']} not found for store {store.id}"
                continue
        visits.append(StoreVisit(
            store=store,
            store_name=store.name,
            order=order,
            visit_order=entry['visit_order'],
            planned_arrival_time=entry['planned_arrival_time'],
            order_value_eur=order.final_amount_eur if order else 0,
            notes=entry['notes']
        ))
    if visit_errors:
        return jsonify({'errors': {'store_visits': visit_errors}}), 400

    try:
        trip_number = DistributionTrip.generate_trip_number(validated_data['trip_date'])
        trip = DistributionTrip(
            trip_number=trip_number,
            distributor_id=validated_data['distributor_id'],
            trip_date=validated_data['trip_date'],
            notes=validated_data['notes'],
            trip_status=TripStatus.PLANNED,
            created_by=current_user_id()
        )
        trip.visits = visits
        db.session.add(trip)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to create trip")
        return jsonify({'error': f'Failed to create trip: {str(e)}'}), 500

    return jsonify({'message': 'Trip created successfully', 'trip': trip.to_dict(include_visits=True)}), 201


@trips_bp.route('/<int:trip_id>', methods=['PUT'])
@manager_required
def update_trip(trip_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    if trip.trip_status != TripStatus.PLANNED:
        return jsonify({'error': f'Cannot edit a trip that is {trip.trip_status.value}'}), 400

    data = request.get_json(silent=True) or {}
    try:
        trip_date = parse_date(data.get('trip_date'), 'trip_date')
    except ValueError as e:
        return jsonify({'errors': {'trip_date': str(e)}}), 400

    if 'distributor_id' in data:
        try:
            distributor = _active_distributor(int(data['distributor_id']))
        except (TypeError, ValueError):
            distributor = None
        if distributor is None:
            return jsonify({'errors': {'distributor_id': 'Distributor not found or not active'}}), 400
        trip.distributor_id = distributor.id

    try:
        if trip_date:
            trip.trip_date = trip_date
        if 'notes' in data:
            trip.notes = (data.get('notes') or '').strip() or None
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to update trip %s", trip_id)
        return jsonify({'error': f'Failed to update trip: {str(e)}'}), 500

    return jsonify({'message': 'Trip updated successfully', 'trip': trip.to_dict(include_visits=True)}), 200


@trips_bp.route('/<int:trip_id>/start', methods=['POST'])
@staff_required
def start_trip(trip_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    if not _owns(trip):
        return jsonify({'error': 'You can only start your own trips'}), 403

    try:
        trip.start()
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to start trip %s", trip_id)
        return jsonify({'error': f'Failed to start trip: {str(e)}'}), 500

    return jsonify({'message': 'Trip started', 'trip': trip.to_dict(include_visits=True)}), 200


@trips_bp.route('/<int:trip_id>/complete', methods=['POST'])
@staff_required
def complete_trip(trip_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    if not _owns(trip):
        return jsonify({'error': 'You can only complete your own trips'}), 403

    data = request.get_json(silent=True) or {}
    try:
        total_distance = to_decimal(data['total_distance']) if data.get('total_distance') is not None else None
        fuel = to_decimal(data['fuel_consumption']) if data.get('fuel_consumption') is not None else None
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    if (total_distance is not None and total_distance < 0) or (fuel is not None and fuel < 0):
        return jsonify({'error': 'Distance and fuel consumption cannot be negative'}), 400

    try:
        if total_distance is None:
            total_distance = MapsService().route_distance(_visited_points(trip))
        trip.complete()
        trip.total_distance = total_distance
        if fuel is not None:
            trip.fuel_consumption = fuel
        if data.get('notes'):
            trip.notes = f"{trip.notes}\n{data['notes']}" if trip.notes else data['notes']
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to complete trip %s", trip_id)
        return jsonify({'error': f'Failed to complete trip: {str(e)}'}), 500

    return jsonify({'message': 'Trip completed', 'trip': trip.to_dict(include_visits=True)}), 200


@trips_bp.route('/<int:trip_id>/cancel', methods=['POST'])
@staff_required
def cancel_trip(trip_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    if not _owns(trip):
        return jsonify({'error': 'You can only cancel your own trips'}), 403

    try:
        trip.cancel()
        reason = (request.get_json(silent=True) or {}).get('reason')
        if reason:
            trip.notes = f"{trip.notes}\nCancelled: {reason}" if trip.notes else f"Cancelled: {reason}"
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to cancel trip %s", trip_id)
        return jsonify({'error': f'Failed to cancel trip: {str(e)}'}), 500

    return jsonify({'message': 'Trip cancelled', 'trip': trip.to_dict(include_visits=True)}), 200


@trips_bp.route('/<int:trip_id>', methods=['DELETE'])
@manager_required
def delete_trip(trip_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    if trip.trip_status not in (TripStatus.PLANNED, TripStatus.CANCELLED):
        return jsonify({'error': f'Cannot delete a trip that is {trip.trip_status.value}'}), 400

    try:
        visit_ids = [visit.id for visit in trip.visits]
        if visit_ids:
            Payment.query.filter(Payment.visit_id.in_(visit_ids)).update(
                {'visit_id': None}, synchronize_session=False
            )
        db.session.delete(trip)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to delete trip %s", trip_id)
        return jsonify({'error': f'Failed to delete trip: {str(e)}'}), 500

    return jsonify({'message': 'Trip deleted successfully'}), 200


# VISITS
def _trip_visit(trip_id, visit_id):
    trip = db.get_or_404(DistributionTrip, trip_id)
    visit = StoreVisit.query.filter_by(id=visit_id, trip_id=trip.id).first_or_404()
    return trip, visit


@trips_bp.route('/<int:trip_id>/visits/<int:visit_id>/arrive', methods=['POST'])
@staff_required
def arrive_at_store(trip_id, visit_id):
    trip, visit = _trip_visit(trip_id, visit_id)
    if not _owns(trip):
        return jsonify({'error': 'This trip is not assigned to you'}), 403
    if trip.trip_status != TripStatus.IN_PROGRESS:
        return jsonify({'error': 'Trip must be in progress'}), 400

    try:
        visit.arrive()
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to record arrival for visit %s", visit_id)
        return jsonify({'error': f'Failed to record arrival: {str(e)}'}), 500

    return jsonify({'message': f'Arrived at {visit.store_name}', 'visit': visit.to_dict()}), 200


@trips_bp.route('/<int:trip_id>/visits/<int:visit_id>/complete', methods=['POST'])
@staff_required
def complete_visit(trip_id, visit_id):
    """
    POST /api/distribution/trips/<id>/visits/<visit_id>/complete
    Body: delivery_successful, payment_collected_eur, problems_encountered, notes
    """
    trip, visit = _trip_visit(trip_id, visit_id)
    if not _owns(trip):
        return jsonify({'error': 'This trip is not assigned to you'}), 403
    if trip.trip_status != TripStatus.IN_PROGRESS:
        return jsonify({'error': 'Trip must be in progress'}), 400

    data = request.get_json(silent=True) or {}
    successful = parse_bool(data.get('delivery_successful', True))
    try:
        collected = to_decimal(data.get('payment_collected_eur'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    if collected < 0:
        return jsonify({'error': 'payment_collected_eur cannot be negative'}), 400

    problems = data.get('problems_encountered') or []
    if isinstance(problems, str):
        problems = [problems]
    if not isinstance(problems, list):
        return jsonify({'error': 'problems_encountered must be a list'}), 400

    user = get_current_user()
    payment = None
    try:
        visit.finish(successful)
        visit.problems_encountered = problems
        if data.get('notes'):
            visit.notes = f"{visit.notes}\n{data['notes']}" if visit.notes else data['notes']

        order = visit.order
        if successful and order is not None:
            OrderService.deliver_if_possible(order, user.id, f'Delivered on trip {trip.trip_number}')

        if collected > 0:
            visit.payment_collected = True
            visit.payment_collected_eur = collected
            partial = order is not None and collected < Decimal(str(order.final_amount_eur or 0))
            payment_number = Payment.generate_payment_number()
            payment = Payment(
                payment_number=payment_number,
                store=visit.store,
                store_name=visit.store_name,
                order=order,
                distributor_id=trip.distributor_id,
                visit_id=visit.id,
                amount_eur=collected,
                amount_syp=0,
                exchange_rate=PricingService.exchange_rate(),
                currency='EUR',
                payment_method=PaymentMethod.CASH,
                payment_type=PaymentType.PARTIAL if partial else PaymentType.FULL,
                payment_date=datetime.utcnow().date(),
                notes=f'Collected on trip {trip.trip_number}',
                status=PaymentStatus.PENDING,
                created_by=user.id,
                created_by_name=user.full_name
            )
            db.session.add(payment)
            PaymentService.record_completed(payment)

        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.exception("Failed to complete visit %s", visit_id)
        return jsonify({'error': f'Failed to complete visit: {str(e)}'}), 500

    return jsonify({
        'message': f'Visit to {visit.store_name} {visit.visit_status.value}',
        'visit': visit.to_dict(),
        'payment': payment.to_dict() if payment else None,
        'order_status': visit.order.status.value if visit.order else None
    }), 200
