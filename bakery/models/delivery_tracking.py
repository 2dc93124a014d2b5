from datetime import datetime

from sqlalchemy import Enum

from extensions import db
from bakery.models.delivery import ScheduleStatus
from bakery.utils.helpers import to_float, iso


class DeliveryTracking(db.Model):
    """Status and location history of a delivery schedule"""
    __tablename__ = 'delivery_tracking'

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('delivery_schedules.id'), nullable=False, index=True)

    # Location data
    latitude = db.Column(db.Numeric(10, 8))
    longitude = db.Column(db.Numeric(11, 8))
    location_description = db.Column(db.String(200))

    status = db.Column(Enum(ScheduleStatus), nullable=False)
    notes = db.Column(db.Text)
    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    recorder = db.relationship('User', lazy=True)

    def get_google_maps_url(self):
        """Generate Google Maps URL for this location"""
        if self.latitude is not None and self.longitude is not None:
            return f"https://www.google.com/maps?q={self.latitude},{self.longitude}"
        return None

    def get_status_message(self):
        """Generate human-readable status message"""
        status_messages = {
            ScheduleStatus.SCHEDULED: "Delivery scheduled",
            ScheduleStatus.CONFIRMED: "Delivery confirmed by the store",
            ScheduleStatus.IN_PROGRESS: "Distributor is on the way",
            ScheduleStatus.DELIVERED: "Delivered successfully",
            ScheduleStatus.MISSED: "Delivery missed",
            ScheduleStatus.CANCELLED: "Delivery cancelled",
            ScheduleStatus.RESCHEDULED: "Delivery moved to a new date"
        }
        return status_messages.get(self.status, "Status update")

    def to_dict(self):
        return {
            'id': self.id,
            'schedule_id': self.schedule_id,
            'location': {
                'latitude': to_float(self.latitude),
                'longitude': to_float(self.longitude),
                'description': self.location_description,
                'google_maps_url': self.get_google_maps_url()
            },
            'status': self.status.value if self.status else None,
            'status_message': self.get_status_message(),
            'notes': self.notes,
            'recorded_by': self.recorded_by,
            'created_at': iso(self.created_at)
        }

    @classmethod
    def create_from_status_change(cls, schedule, new_status, user_id=None, notes=None):
        """Create tracking record from status change"""
        return cls(
            schedule_id=schedule.id,
            status=new_status,
            location_description=cls._get_location_description(new_status),
            recorded_by=user_id,
            notes=notes or f"Status changed to {new_status.value}"
        )

    @staticmethod
    def _get_location_description(status):
        descriptions = {
            ScheduleStatus.IN_PROGRESS: "Left the bakery",
            ScheduleStatus.DELIVERED: "At the store",
            ScheduleStatus.MISSED: "Store not reached"
        }
        return descriptions.get(status)
