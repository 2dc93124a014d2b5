import logging
from datetime import datetime

from flask_restful import Resource
import phonenumbers
from flask import request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    jwt_required,
    get_jwt,
)

from extensions import db
from bakery.models.user import User
from bakery.models.token_blocklist import TokenBlocklist
from bakery.utils.role_guards import current_role, current_user_id, get_current_user

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


#POST /api/auth/register → admin creates an account.
class RegisterResource(Resource):
    @jwt_required()
    def post(self):
        if current_role() != "admin":
            return {"message": "You are not authorized to access this resource"}, 403

        try:
            data = request.get_json()

            if not data:
                return {"message": "Request body is required"}, 400

            # Validate required fields
            required_fields = ["username", "email", "password", "full_name"]
            for field in required_fields:
                if not data.get(field):
                    return {"message": f"{field} is required"}, 400

            if len(data["password"]) < MIN_PASSWORD_LENGTH:
                return {"message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}, 422

            if User.query.filter_by(username=data["username"].strip()).first():
                return {"message": "Username already taken"}, 422
            if User.query.filter_by(email=data["email"].strip().lower()).first():
                return {"message": "Email already taken"}, 422

            user = User(
                username=data["username"],
                email=data["email"],
                full_name=data["full_name"],
                phone=data.get("phone") or None,
                role=data.get("role", "distributor"),
                status=data.get("status", "active"),
            )
            user.set_password(data["password"])

            db.session.add(user)
            db.session.commit()
            logger.info("User %s registered with role %s", user.username, user.role)

            return {
                "message": "User registered successfully",
                "user": user.to_dict(),
            }, 201

        except phonenumbers.NumberParseException as e:
            db.session.rollback()
            return {"message": str(e), "error": "ValidationError"}, 422
        except ValueError as e:
            db.session.rollback()
            return {"message": str(e), "error": "ValueError"}, 422
        except IntegrityError:
            db.session.rollback()
            return {"message": "Username or email already taken", "error": "IntegrityError"}, 422


#POST /api/auth/login → access_token, refresh_token, user.
class LoginResource(Resource):
    def post(self):
        data = request.get_json(silent=True)

        if not data:
            return {"error": "Request body is required"}, 400

        login = (data.get("login") or data.get("username") or data.get("email") or "").strip()
        password = data.get("password")

        if not all([login, password]):
            return {"error": "Login and password are required"}, 400

        user = User.query.filter(
            or_(User.username == login, User.email == login.lower())
        ).first()
        if not user or not user.check_password(password):
            return {"error": "Invalid credentials"}, 401
        if not user.is_active:
            return {"error": "Account is not active. Please contact an administrator."}, 403

        try:
            user.last_login = datetime.utcnow()
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("Failed to record login for %s", user.username)
            return {"error": f"Login failed: {str(e)}"}, 500

        access_token = create_access_token(identity=str(user.id))
        refresh_token = create_refresh_token(identity=str(user.id))

        return {
            "message": "Login successful",
            "user": user.to_dict(),
            "access_token": access_token,
            "refresh_token": refresh_token,
        }, 200


class LogoutResource(Resource):
    @jwt_required()
    def post(self):
        jti = get_jwt()["jti"]
        try:
            db.session.add(TokenBlocklist(jti=jti, user_id=current_user_id()))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("Failed to revoke token")
            return {"error": f"Logout failed: {str(e)}"}, 500

        return {"message": "Successfully logged out"}, 200


class MeResource(Resource):
    @jwt_required()
    def get(self):
        user = get_current_user()

        if not user:
            return {"message": "User not found"}, 404

        return {"user": user.to_dict()}, 200


#refresh token endpoint
class RefreshResource(Resource):
    @jwt_required(refresh=True)
    def post(self):
        user = get_current_user()

        if not user:
            return {"message": "User not found"}, 404
        if not user.is_active:
            return {"message": "Account is not active"}, 403

        access_token = create_access_token(identity=str(user.id))

        return {
            "access_token": access_token
        }, 200


class ChangePasswordResource(Resource):
    @jwt_required()
    def put(self):
        data = request.get_json(silent=True) or {}
        user = get_current_user()
        if not user:
            return {"message": "User not found"}, 404

        current_password = data.get("current_password")
        new_password = data.get("new_password") or ""

        if not current_password or not new_password:
            return {"message": "current_password and new_password are required"}, 400
        if not user.check_password(current_password):
            return {"message": "Current password is incorrect"}, 400
        if len(new_password) < MIN_PASSWORD_LENGTH:
            return {"message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}, 400

        try:
            user.set_password(new_password)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("Failed to change password for %s", user.username)
            return {"error": f"Failed to change password: {str(e)}"}, 500

        return {"message": "Password changed successfully"}, 200


class ProfileResource(Resource):
    @jwt_required()
    def put(self):
        data = request.get_json(silent=True) or {}
        user = get_current_user()
        if not user:
            return {"message": "User not found"}, 404

        try:
            if "email" in data:
                email = (data["email"] or "").strip().lower()
                taken = User.query.filter(User.email == email, User.id != user.id).first()
                if taken:
                    return {"message": "Email already taken"}, 422
                user.email = email
            if "full_name" in data:
                user.full_name = data["full_name"]
            if "phone" in data:
                user.phone = data["phone"] or None

            db.session.commit()
            return {"message": "Profile updated successfully", "user": user.to_dict()}, 200

        except phonenumbers.NumberParseException as e:
            db.session.rollback()
            return {"message": str(e), "error": "ValidationError"}, 422
        except ValueError as e:
            db.session.rollback()
            return {"message": str(e), "error": "ValueError"}, 422
