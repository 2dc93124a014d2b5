"""
Scheduling Service
Time windows, conflicts and daily capacity for delivery schedules
"""
from datetime import datetime, timedelta

from flask import current_app

from bakery.models.delivery import DeliverySchedule, TimeSlot, ACTIVE_SCHEDULE_STATUSES
from bakery.services.distribution_service import DistributionService

DEFAULT_WINDOW = timedelta(hours=1)


class SchedulingService:

    @staticmethod
    def window(on_date, start, end=None):
        """[start, end) as datetimes; a missing end lasts one hour"""
        start_dt = datetime.combine(on_date, start)
        end_dt = datetime.combine(on_date, end) if end else start_dt + DEFAULT_WINDOW
        return start_dt, end_dt

    @staticmethod
    def find_conflicts(on_date, start, end=None, distributor_id=None, exclude_id=None):
        """Active schedules of the same distributor overlapping the window"""
        if distributor_id is None:
            return []

        query = DeliverySchedule.query.filter(
            DeliverySchedule.scheduled_date == on_date,
            DeliverySchedule.distributor_id == distributor_id,
            DeliverySchedule.status.in_(ACTIVE_SCHEDULE_STATUSES)
        )
        if exclude_id is not None:
            query = query.filter(DeliverySchedule.id != exclude_id)

        new_start, new_end = SchedulingService.window(on_date, start, end)
        conflicts = []
        for schedule in query.all():
            other_start, other_end = SchedulingService.window(
                schedule.scheduled_date, schedule.scheduled_time_start, schedule.scheduled_time_end
            )
            if new_start < other_end and other_start < new_end:
                conflicts.append(schedule)
        return conflicts

    @staticmethod
    def capacity(on_date):
        """Daily delivery capacity against the schedules already booked"""
        per_distributor = int(current_app.config.get('DAILY_CAPACITY_PER_DISTRIBUTOR', 10))
        distributors = DistributionService.active_distributors().all()
        total_capacity = len(distributors) * per_distributor

        schedules = DeliverySchedule.query.filter(
            DeliverySchedule.scheduled_date == on_date,
            DeliverySchedule.status.in_(ACTIVE_SCHEDULE_STATUSES)
        ).all()
        used = len(schedules)

        by_slot = {slot.value: 0 for slot in TimeSlot}
        for schedule in schedules:
            by_slot[schedule.time_slot.value] += 1

        by_distributor = []
        suggestions = []
        for distributor in distributors:
            booked = len([s for s in schedules if s.distributor_id == distributor.id])
            entry = {
                'distributor_id': distributor.id,
                'name': distributor.full_name,
                'scheduled': booked,
                'capacity': per_distributor,
                'available': max(per_distributor - booked, 0)
            }
            by_distributor.append(entry)
            if booked < per_distributor:
                suggestions.append(entry)

        suggestions.sort(key=lambda entry: (-entry['available'], entry['distributor_id']))

        return {
            'date': on_date.isoformat(),
            'total_capacity': total_capacity,
            'used_capacity': used,
            'available_capacity': max(total_capacity - used, 0),
            'utilization_rate': round(used / total_capacity * 100, 2) if total_capacity else 0,
            'unassigned': len([s for s in schedules if s.distributor_id is None]),
            'by_time_slot': by_slot,
            'by_distributor': by_distributor,
            'suggestions': suggestions
        }

    @staticmethod
    def max_reschedules():
        return int(current_app.config.get('MAX_RESCHEDULES', 3))
