"""
Delivery Schedule and Trip Validators
"""
from abc import ABC

from bakery.models.delivery import DeliveryType, TimeSlot, DELIVERY_PRIORITIES, time_slot_for
from bakery.utils.helpers import to_decimal, parse_date, parse_time, parse_datetime, parse_bool


class ScheduleValidator(ABC):

    @staticmethod
    def validate(data: dict, partial=False) -> tuple:
        """
        Validate a delivery schedule

        time_slot follows the start time unless the client names one, in
        which case the slot is recorded as custom.

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        errors = {}
        validated = {}

        if not partial:
            for field, message in (('order_id', 'Order is required'),
                                   ('scheduled_date', 'Scheduled date is required'),
                                   ('scheduled_time_start', 'Start time is required')):
                if data.get(field) in (None, ''):
                    errors[field] = message
            if errors:
                return (False, {}, errors)
        else:
            for field, message in (('scheduled_date', 'Scheduled date cannot be empty'),
                                   ('scheduled_time_start', 'Start time cannot be empty')):
                if field in data and data[field] in (None, ''):
                    errors[field] = message
            if errors:
                return (False, {}, errors)

        for field in ('order_id', 'distributor_id', 'estimated_duration_minutes'):
            if field in data:
                try:
                    validated[field] = int(data[field]) if data[field] not in (None, '') else None
                except (ValueError, TypeError):
                    errors[field] = f'{field} must be an integer'

        try:
            if 'scheduled_date' in data:
                validated['scheduled_date'] = parse_date(data['scheduled_date'], 'scheduled_date')
            if 'scheduled_time_start' in data:
                validated['scheduled_time_start'] = parse_time(data['scheduled_time_start'], 'scheduled_time_start')
            if 'scheduled_time_end' in data:
                validated['scheduled_time_end'] = parse_time(data['scheduled_time_end'], 'scheduled_time_end')
        except ValueError as e:
            errors['schedule'] = str(e)

        start = validated.get('scheduled_time_start')
        end = validated.get('scheduled_time_end')
        if start and end and end <= start:
            errors['scheduled_time_end'] = 'End time must be after start time'

        if data.get('time_slot'):
            try:
                TimeSlot(str(data['time_slot']).lower())
                validated['time_slot'] = TimeSlot.CUSTOM
            except ValueError:
                errors['time_slot'] = f"time_slot must be one of: {', '.join(s.value for s in TimeSlot)}"
        elif start:
            validated['time_slot'] = time_slot_for(start)

        if data.get('delivery_type'):
            try:
                validated['delivery_type'] = DeliveryType(str(data['delivery_type']).lower())
            except ValueError:
                errors['delivery_type'] = f"delivery_type must be one of: {', '.join(t.value for t in DeliveryType)}"

        if data.get('priority'):
            priority = str(data['priority']).lower()
            priority = 'normal' if priority == 'medium' else priority
            if priority not in DELIVERY_PRIORITIES:
                errors['priority'] = f"priority must be one of: {', '.join(DELIVERY_PRIORITIES)}"
            else:
                validated['priority'] = priority

        if 'delivery_fee_eur' in data:
            try:
                fee = to_decimal(data['delivery_fee_eur'])
                if fee < 0:
                    errors['delivery_fee_eur'] = 'Delivery fee cannot be negative'
                validated['delivery_fee_eur'] = fee
            except ValueError as e:
                errors['delivery_fee_eur'] = str(e)

        for field in ('delivery_address', 'delivery_instructions', 'contact_person', 'contact_phone', 'contact_email'):
            if field in data:
                validated[field] = (data.get(field) or '').strip() or None

        if 'confirmation_required' in data:
            validated['confirmation_required'] = parse_bool(data['confirmation_required'])

        if errors:
            return (False, {}, errors)
        return (True, validated, {})

    @staticmethod
    def validate_rating(data: dict) -> tuple:
        if data.get('delivery_rating') in (None, ''):
            return (True, {}, {})
        try:
            rating = int(data['delivery_rating'])
        except (ValueError, TypeError):
            return (False, {}, {'delivery_rating': 'Rating must be an integer'})
        if not 1 <= rating <= 5:
            return (False, {}, {'delivery_rating': 'Rating must be between 1 and 5'})
        return (True, {'delivery_rating': rating}, {})

    @staticmethod
    def validate_location(data: dict) -> tuple:
        errors = {}
        try:
            latitude = float(data.get('latitude'))
            longitude = float(data.get('longitude'))
        except (ValueError, TypeError):
            return (False, {}, {'coordinates': 'latitude and longitude must be valid numbers'})

        if not (-90 <= latitude <= 90):
            errors['latitude'] = f'Latitude must be between -90 and 90, got {latitude}'
        if not (-180 <= longitude <= 180):
            errors['longitude'] = f'Longitude must be between -180 and 180, got {longitude}'
        if errors:
            return (False, {}, errors)

        return (True, {
            'latitude': latitude,
            'longitude': longitude,
            'location_description': (data.get('location_description') or '').strip() or None,
            'notes': (data.get('notes') or '').strip() or None
        }, {})


class TripValidator(ABC):

    @staticmethod
    def validate_create(data: dict) -> tuple:
        """
        Validate a distribution trip with its store visits

        Returns:
            tuple: (is_valid: bool, validated_data: dict, errors: dict)
        """
        errors = {}

        try:
            distributor_id = int(data.get('distributor_id'))
        except (ValueError, TypeError):
            errors['distributor_id'] = 'Distributor is required'
            distributor_id = None

        try:
            trip_date = parse_date(data.get('trip_date'), 'trip_date')
            if trip_date is None:
                errors['trip_date'] = 'Trip date is required'
        except ValueError as e:
            errors['trip_date'] = str(e)
            trip_date = None

        visits, visit_errors = TripValidator._validate_visits(data.get('store_visits') or [])
        if visit_errors:
            errors['store_visits'] = visit_errors

        if errors:
            return (False, {}, errors)

        return (True, {
            'distributor_id': distributor_id,
            'trip_date': trip_date,
            'notes': (data.get('notes') or '').strip() or None,
            'store_visits': visits
        }, {})

    @staticmethod
    def _validate_visits(visits) -> tuple:
        if not isinstance(visits, list):
            return [], {'_': 'store_visits must be a list'}

        validated = []
        errors = {}
        for position, visit in enumerate(visits):
            try:
                entry = {
                    'store_id': int(visit.get('store_id')),
                    'order_id': int(visit['order_id']) if visit.get('order_id') not in (None, '') else None,
                    'visit_order': int(visit.get('visit_order') or position + 1),
                    'planned_arrival_time': parse_datetime(visit.get('planned_arrival_time'), 'planned_arrival_time'),
                    'notes': (visit.get('notes') or '').strip() or None
                }
            except (ValueError, TypeError, AttributeError) as e:
                errors[str(position)] = str(e) if isinstance(e, ValueError) else 'store_id is required'
                continue
            validated.append(entry)
        return validated, errors


__all__ = ['ScheduleValidator', 'TripValidator']
