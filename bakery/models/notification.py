# bakery/models/notification.py
"""
Notification Model
Stores in-app notifications for users about orders, assignments and payments
"""
from extensions import db
from datetime import datetime
from sqlalchemy_serializer import SerializerMixin

NOTIFICATION_TYPES = ('ORDER_CREATED', 'STATUS_UPDATE', 'ASSIGNMENT', 'PAYMENT')


class Notification(db.Model, SerializerMixin):
    __tablename__ = 'notifications'

    serialize_only = ('id', 'user_id', 'order_id', 'type', 'message', 'is_read', 'read_at', 'created_at')

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Foreign Keys
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=True)

    # Notification data
    type = db.Column(db.Enum(*NOTIFICATION_TYPES, name='notification_types'), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic'))

    @classmethod
    def notify(cls, user_id, type, message, order_id=None):
        """Queue a notification on the current session; the caller commits"""
        if not user_id:
            return None
        notification = cls(user_id=user_id, type=type, message=message, order_id=order_id)
        db.session.add(notification)
        return notification

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = datetime.utcnow()
