import re
from datetime import datetime

from extensions import db, bcrypt
from sqlalchemy.orm import validates
from sqlalchemy_serializer import SerializerMixin
import phonenumbers


USER_ROLES = ("admin", "manager", "distributor", "viewer")
USER_STATUSES = ("active", "inactive", "suspended", "pending")

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")


class User(db.Model, SerializerMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    password_hash = db.Column(db.String(128), nullable=False)
    role = db.Column(
        db.Enum(*USER_ROLES, name="user_roles"),
        default="distributor",
        nullable=False,
    )
    status = db.Column(
        db.Enum(*USER_STATUSES, name="user_statuses"),
        default="active",
        nullable=False,
    )

    # Distribution bookkeeping
    current_workload = db.Column(db.Integer, default=0, nullable=False)
    performance_rating = db.Column(db.Float, default=0.0)

    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    serialize_only = (
        "id",
        "username",
        "email",
        "full_name",
        "phone",
        "role",
        "status",
        "current_workload",
        "performance_rating",
        "last_login",
        "created_at",
        "updated_at",
    )

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode("utf-8")

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        return self.status == "active"

    @property
    def is_distributor(self):
        return self.role == "distributor"

    def adjust_workload(self, delta):
        """Shift the workload counter, never dropping below zero."""
        self.current_workload = max(0, (self.current_workload or 0) + delta)

    @validates("username")
    def validate_username(self, key, username):
        username = (username or "").strip()
        if not USERNAME_PATTERN.match(username):
            raise ValueError("Username must be 3-50 characters (letters, digits, _ . -)")
        return username

    @validates("email")
    def validate_email(self, key, address):
        address = (address or "").strip().lower()
        if "@" not in address:
            raise ValueError("Invalid email address")
        return address

    @validates("full_name")
    def validate_full_name(self, key, name):
        name = (name or "").strip()
        if len(name) < 2 or len(name) > 100:
            raise ValueError("Full name must be between 2 and 100 characters")
        return name

    @validates("phone")
    def validate_phone(self, key, number):
        # Skip validation if phone is None or empty
        if number is None or number == "":
            return None

        if "+" not in number:
            raise ValueError("Phone number must include country code")

        parsed = phonenumbers.parse(number, None)
        if not phonenumbers.is_valid_number(parsed):
            raise ValueError("Enter a valid phone number")
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)

    @validates("role")
    def validate_role(self, key, role):
        if role not in USER_ROLES:
            raise ValueError(f"Invalid role. Valid options: {list(USER_ROLES)}")
        return role

    @validates("status")
    def validate_status(self, key, status):
        if status not in USER_STATUSES:
            raise ValueError(f"Invalid status. Valid options: {list(USER_STATUSES)}")
        return status

    def to_summary(self):
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
        }

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"
