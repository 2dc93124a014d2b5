import secrets
from datetime import datetime, time
from enum import Enum as PyEnum

from sqlalchemy import Enum

from extensions import db
from bakery.utils.helpers import to_float, iso


class ScheduleStatus(PyEnum):
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in_progress'
    DELIVERED = 'delivered'
    MISSED = 'missed'
    CANCELLED = 'cancelled'
    RESCHEDULED = 'rescheduled'


class TimeSlot(PyEnum):
    MORNING = 'morning'
    AFTERNOON = 'afternoon'
    EVENING = 'evening'
    CUSTOM = 'custom'


class DeliveryType(PyEnum):
    STANDARD = 'standard'
    EXPRESS = 'express'
    SCHEDULED = 'scheduled'
    PICKUP = 'pickup'


# Schedules that still occupy a distributor's time
ACTIVE_SCHEDULE_STATUSES = (ScheduleStatus.SCHEDULED, ScheduleStatus.CONFIRMED, ScheduleStatus.IN_PROGRESS)

DELIVERY_PRIORITIES = ('low', 'normal', 'high', 'urgent')


def time_slot_for(start):
    """Slot a delivery falls in, from its start time"""
    if start < time(12, 0):
        return TimeSlot.MORNING
    if start < time(17, 0):
        return TimeSlot.AFTERNOON
    return TimeSlot.EVENING


class DeliverySchedule(db.Model):
    """Planned delivery window for an order"""
    __tablename__ = 'delivery_schedules'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, index=True)
    distributor_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    # Timing
    scheduled_date = db.Column(db.Date, nullable=False, index=True)
    scheduled_time_start = db.Column(db.Time, nullable=False)
    scheduled_time_end = db.Column(db.Time)
    time_slot = db.Column(Enum(TimeSlot), nullable=False, default=TimeSlot.MORNING)
    delivery_type = db.Column(Enum(DeliveryType), nullable=False, default=DeliveryType.STANDARD)
    priority = db.Column(db.Enum(*DELIVERY_PRIORITIES, name='delivery_priorities'), nullable=False, default='normal')

    status = db.Column(Enum(ScheduleStatus), nullable=False, default=ScheduleStatus.SCHEDULED, index=True)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    # Delivery details
    delivery_address = db.Column(db.Text)
    delivery_instructions = db.Column(db.Text)
    contact_person = db.Column(db.String(100))
    contact_phone = db.Column(db.String(20))
    contact_email = db.Column(db.String(100))
    delivery_fee_eur = db.Column(db.Numeric(10, 2), default=0)

    # Customer confirmation
    confirmation_token = db.Column(db.String(64), unique=True, nullable=False,
                                   default=lambda: secrets.token_urlsafe(24))
    confirmation_required = db.Column(db.Boolean, default=False)
    confirmed_at = db.Column(db.DateTime)
    confirmed_by = db.Column(db.String(100))
    customer_notes = db.Column(db.Text)

    # Rescheduling
    reschedule_count = db.Column(db.Integer, nullable=False, default=0)
    max_reschedules = db.Column(db.Integer, nullable=False, default=3)
    reschedule_reason = db.Column(db.Text)
    rescheduled_from = db.Column(db.Integer, db.ForeignKey('delivery_schedules.id'))

    # Outcome
    estimated_duration_minutes = db.Column(db.Integer, default=30)
    actual_duration_minutes = db.Column(db.Integer)
    delivery_rating = db.Column(db.Integer)
    delivery_feedback = db.Column(db.Text)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order = db.relationship('Order', backref=db.backref('delivery_schedules', lazy='dynamic'))
    distributor = db.relationship('User', foreign_keys=[distributor_id])
    tracking_updates = db.relationship('DeliveryTracking', backref='schedule', lazy=True,
                                       cascade='all, delete-orphan',
                                       order_by='desc(DeliveryTracking.created_at)')

    STATUS_FLOW = {
        ScheduleStatus.SCHEDULED: [ScheduleStatus.CONFIRMED, ScheduleStatus.IN_PROGRESS, ScheduleStatus.CANCELLED,
                                   ScheduleStatus.MISSED, ScheduleStatus.RESCHEDULED],
        ScheduleStatus.CONFIRMED: [ScheduleStatus.IN_PROGRESS, ScheduleStatus.CANCELLED,
                                   ScheduleStatus.MISSED, ScheduleStatus.RESCHEDULED],
        ScheduleStatus.IN_PROGRESS: [ScheduleStatus.DELIVERED, ScheduleStatus.MISSED],
        ScheduleStatus.DELIVERED: [],
        ScheduleStatus.MISSED: [],
        ScheduleStatus.CANCELLED: [],
        ScheduleStatus.RESCHEDULED: []
    }

    def can_edit(self):
        return self.status in (ScheduleStatus.SCHEDULED, ScheduleStatus.CONFIRMED)

    def can_reschedule(self):
        return self.can_edit() and (self.reschedule_count or 0) < (self.max_reschedules or 0)

    def can_transition_to(self, new_status):
        return new_status in self.STATUS_FLOW.get(self.status, [])

    def update_status(self, new_status):
        """Update schedule status with validation"""
        if not self.can_transition_to(new_status):
            raise ValueError(f"Cannot change status from {self.status.value} to {new_status.value}")

        now = datetime.utcnow()
        self.status = new_status
        self.updated_at = now

        if new_status == ScheduleStatus.IN_PROGRESS and not self.started_at:
            self.started_at = now
        elif new_status == ScheduleStatus.DELIVERED:
            self.completed_at = now
            if self.started_at:
                self.actual_duration_minutes = int((now - self.started_at).total_seconds() // 60)
        elif new_status == ScheduleStatus.CONFIRMED and not self.confirmed_at:
            self.confirmed_at = now

    def latest_tracking(self):
        return self.tracking_updates[0] if self.tracking_updates else None

    def to_dict(self, include_tracking=False):
        """Convert schedule to dictionary"""
        order = self.order
        data = {
            'id': self.id,
            'order_id': self.order_id,
            'distributor_id': self.distributor_id,
            'scheduled_date': iso(self.scheduled_date),
            'scheduled_time_start': self.scheduled_time_start.strftime('%H:%M') if self.scheduled_time_start else None,
            'scheduled_time_end': self.scheduled_time_end.strftime('%H:%M') if self.scheduled_time_end else None,
            'time_slot': self.time_slot.value if self.time_slot else None,
            'delivery_type': self.delivery_type.value if self.delivery_type else None,
            'priority': self.priority,
            'status': self.status.value if self.status else None,
            'started_at': iso(self.started_at),
            'completed_at': iso(self.completed_at),
            'delivery_address': self.delivery_address,
            'delivery_instructions': self.delivery_instructions,
            'contact_person': self.contact_person,
            'contact_phone': self.contact_phone,
            'contact_email': self.contact_email,
            'delivery_fee_eur': to_float(self.delivery_fee_eur),
            'confirmation_token': self.confirmation_token,
            'confirmation_required': self.confirmation_required,
            'confirmed_at': iso(self.confirmed_at),
            'confirmed_by': self.confirmed_by,
            'customer_notes': self.customer_notes,
            'reschedule_count': self.reschedule_count,
            'max_reschedules': self.max_reschedules,
            'reschedule_reason': self.reschedule_reason,
            'rescheduled_from': self.rescheduled_from,
            'estimated_duration_minutes': self.estimated_duration_minutes,
            'actual_duration_minutes': self.actual_duration_minutes,
            'delivery_rating': self.delivery_rating,
            'delivery_feedback': self.delivery_feedback,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
            'order': {
                'id': order.id,
                'order_number': order.order_number,
                'status': order.status.value,
                'final_amount_eur': to_float(order.final_amount_eur)
            } if order else None,
            'store': order.store.to_summary() if order and order.store else None,
            'distributor': self.distributor.to_summary() if self.distributor else None
        }

        if include_tracking:
            data['tracking'] = [update.to_dict() for update in self.tracking_updates]

        return data
