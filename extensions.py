from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_jwt_extended import JWTManager
from flask_mail import Mail
from flask_migrate import Migrate
from sqlalchemy import MetaData

# Naming convention for constraints
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

db = SQLAlchemy(metadata=MetaData(naming_convention=naming_convention))
bcrypt = Bcrypt()
jwt = JWTManager()
mail = Mail()
migrate = Migrate()


@jwt.additional_claims_loader
def add_claims_to_jwt(identity):
    from bakery.models.user import User

    user = db.session.get(User, int(identity))
    if not user:
        return {}

    return {
        "role": user.role,
        "username": user.username,
    }


@jwt.token_in_blocklist_loader
def check_if_token_revoked(jwt_header, jwt_payload):
    from bakery.models.token_blocklist import TokenBlocklist

    jti = jwt_payload["jti"]
    return TokenBlocklist.query.filter_by(jti=jti).first() is not None


@jwt.unauthorized_loader
def missing_token_callback(reason):
    return {"error": "Unauthorized", "message": reason}, 401


@jwt.invalid_token_loader
def invalid_token_callback(reason):
    return {"error": "Invalid token", "message": reason}, 401


@jwt.expired_token_loader
def expired_token_callback(jwt_header, jwt_payload):
    return {"error": "Token expired", "message": "The token has expired"}, 401


@jwt.revoked_token_loader
def revoked_token_callback(jwt_header, jwt_payload):
    return {"error": "Token revoked", "message": "The token has been revoked"}, 401
