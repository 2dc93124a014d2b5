from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Enum

from extensions import db
from bakery.utils.helpers import to_float, iso
from bakery.utils.numbering import next_document_number


class TripStatus(PyEnum):
    PLANNED = 'planned'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class VisitStatus(PyEnum):
    SCHEDULED = 'scheduled'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class DistributionTrip(db.Model):
    """A distributor's round of store visits on one day"""
    __tablename__ = 'distribution_trips'

    id = db.Column(db.Integer, primary_key=True)
    trip_number = db.Column(db.String(50), unique=True, nullable=False)
    distributor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    trip_date = db.Column(db.Date, nullable=False, index=True)
    trip_status = db.Column(Enum(TripStatus), nullable=False, default=TripStatus.PLANNED)

    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)
    total_distance = db.Column(db.Numeric(8, 2))  # km
    total_duration = db.Column(db.Integer)  # minutes
    fuel_consumption = db.Column(db.Numeric(6, 2))  # litres
    notes = db.Column(db.Text)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    distributor = db.relationship('User', foreign_keys=[distributor_id])
    visits = db.relationship('StoreVisit', backref='trip', lazy=True,
                             cascade='all, delete-orphan', order_by='StoreVisit.visit_order')

    @classmethod
    def generate_trip_number(cls, trip_date=None):
        return next_document_number(cls, cls.trip_number, 'TRIP', trip_date)

    def start(self):
        if self.trip_status != TripStatus.PLANNED:
            raise ValueError(f"Cannot start a trip that is {self.trip_status.value}")
        self.trip_status = TripStatus.IN_PROGRESS
        self.start_time = datetime.utcnow()

    def complete(self):
        """Close the trip and cancel the visits that never happened"""
        if self.trip_status != TripStatus.IN_PROGRESS:
            raise ValueError(f"Cannot complete a trip that is {self.trip_status.value}")
        self.trip_status = TripStatus.COMPLETED
        self.end_time = datetime.utcnow()
        if self.start_time:
            self.total_duration = int((self.end_time - self.start_time).total_seconds() // 60)
        self._cancel_scheduled_visits()

    def cancel(self):
        if self.trip_status not in (TripStatus.PLANNED, TripStatus.IN_PROGRESS):
            raise ValueError(f"Cannot cancel a trip that is {self.trip_status.value}")
        self.trip_status = TripStatus.CANCELLED
        self._cancel_scheduled_visits()

    def _cancel_scheduled_visits(self):
        for visit in self.visits:
            if visit.visit_status == VisitStatus.SCHEDULED:
                visit.visit_status = VisitStatus.CANCELLED

    def to_dict(self, include_visits=False):
        visits = self.visits
        data = {
            'id': self.id,
            'trip_number': self.trip_number,
            'distributor_id': self.distributor_id,
            'distributor_name': self.distributor.full_name if self.distributor else None,
            'trip_date': iso(self.trip_date),
            'trip_status': self.trip_status.value if self.trip_status else None,
            'start_time': iso(self.start_time),
            'end_time': iso(self.end_time),
            'total_distance': to_float(self.total_distance),
            'total_duration': self.total_duration,
            'fuel_consumption': to_float(self.fuel_consumption),
            'notes': self.notes,
            'visits_count': len(visits),
            'completed_visits': len([v for v in visits if v.visit_status == VisitStatus.COMPLETED]),
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at)
        }
        if include_visits:
            data['visits'] = [visit.to_dict() for visit in visits]
        return data


class StoreVisit(db.Model):
    """One stop of a distribution trip"""
    __tablename__ = 'store_visits'

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, db.ForeignKey('distribution_trips.id'), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey('stores.id'), nullable=False)
    store_name = db.Column(db.String(100), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'))
    visit_order = db.Column(db.Integer, nullable=False, default=1)

    planned_arrival_time = db.Column(db.DateTime)
    actual_arrival_time = db.Column(db.DateTime)
    actual_departure_time = db.Column(db.DateTime)
    visit_status = db.Column(Enum(VisitStatus), nullable=False, default=VisitStatus.SCHEDULED)

    order_value_eur = db.Column(db.Numeric(10, 2), default=0)
    payment_collected_eur = db.Column(db.Numeric(10, 2), default=0)
    delivery_successful = db.Column(db.Boolean)
    payment_collected = db.Column(db.Boolean, default=False)
    problems_encountered = db.Column(db.JSON, default=list)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    store = db.relationship('Store')
    order = db.relationship('Order')

    def arrive(self):
        if self.visit_status != VisitStatus.SCHEDULED:
            raise ValueError(f"Cannot arrive at a visit that is {self.visit_status.value}")
        self.visit_status = VisitStatus.IN_PROGRESS
        self.actual_arrival_time = datetime.utcnow()

    def finish(self, successful):
        if self.visit_status not in (VisitStatus.SCHEDULED, VisitStatus.IN_PROGRESS):
            raise ValueError(f"Cannot complete a visit that is {self.visit_status.value}")
        self.delivery_successful = successful
        self.visit_status = VisitStatus.COMPLETED if successful else VisitStatus.FAILED
        self.actual_departure_time = datetime.utcnow()
        if not self.actual_arrival_time:
            self.actual_arrival_time = self.actual_departure_time

    def to_dict(self):
        return {
            'id': self.id,
            'trip_id': self.trip_id,
            'store_id': self.store_id,
            'store_name': self.store_name,
            'order_id': self.order_id,
            'visit_order': self.visit_order,
            'planned_arrival_time': iso(self.planned_arrival_time),
            'actual_arrival_time': iso(self.actual_arrival_time),
            'actual_departure_time': iso(self.actual_departure_time),
            'visit_status': self.visit_status.value if self.visit_status else None,
            'order_value_eur': to_float(self.order_value_eur),
            'payment_collected_eur': to_float(self.payment_collected_eur),
            'delivery_successful': self.delivery_successful,
            'payment_collected': self.payment_collected,
            'problems_encountered': self.problems_encountered or [],
            'notes': self.notes,
            'store': self.store.to_summary() if self.store else None
        }
