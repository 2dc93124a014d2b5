from functools import wraps
from flask_jwt_extended import (
    verify_jwt_in_request,
    get_jwt,
    get_jwt_identity
)
from flask import jsonify

from extensions import db


def role_required(*allowed_roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()

            claims = get_jwt()
            user_role = claims.get("role")

            if user_role not in allowed_roles:
                return jsonify({
                    "message": "You are not authorized to access this resource"
                }), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator


admin_required = role_required("admin")  # only admins
manager_required = role_required("admin", "manager")  # admins and managers
staff_required = role_required("admin", "manager", "distributor")  # anyone who handles orders
any_role_required = role_required("admin", "manager", "distributor", "viewer")  # read-only access


def current_user_id():
    return int(get_jwt_identity())


def current_role():
    return get_jwt().get("role")


def get_current_user():
    from bakery.models.user import User

    return db.session.get(User, current_user_id())
