import logging

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_restful import Api
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from extensions import db, bcrypt, jwt, mail, migrate


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    bcrypt.init_app(app)
    mail.init_app(app)
    CORS(app)

    # Models must be imported before create_all / migrations see the metadata
    from bakery import models  # noqa: F401

    # Register API resources
    from bakery.routes.auth_routes import (
        RegisterResource, LoginResource, LogoutResource, MeResource,
        RefreshResource, ChangePasswordResource, ProfileResource
    )

    api = Api(app)
    api.add_resource(RegisterResource, "/api/auth/register")
    api.add_resource(LoginResource, "/api/auth/login")
    api.add_resource(LogoutResource, "/api/auth/logout")
    api.add_resource(MeResource, "/api/auth/me")
    api.add_resource(RefreshResource, "/api/auth/refresh")
    api.add_resource(ChangePasswordResource, "/api/auth/change-password")
    api.add_resource(ProfileResource, "/api/auth/profile")

    from bakery.routes.user_routes import users_bp
    from bakery.routes.product_routes import products_bp
    from bakery.routes.store_routes import stores_bp
    from bakery.routes.order_routes import orders_bp
    from bakery.routes.payment_routes import payments_bp
    from bakery.routes.tax_routes import tax_bp
    from bakery.routes.distribution_routes import distribution_bp
    from bakery.routes.delivery_routes import delivery_bp
    from bakery.routes.trip_routes import trips_bp
    from bakery.routes.dashboard_routes import dashboard_bp
    from bakery.routes.notification_routes import notifications_bp

    for blueprint in (users_bp, products_bp, stores_bp, orders_bp, payments_bp, tax_bp,
                      distribution_bp, delivery_bp, trips_bp, dashboard_bp, notifications_bp):
        app.register_blueprint(blueprint)

    register_error_handlers(app)
    register_commands(app)

    @app.route('/health')
    def health_check():
        """Health check with a round trip to the database"""
        try:
            db.session.execute(text('SELECT 1'))
            database = 'connected'
        except SQLAlchemyError as e:
            app.logger.error("Health check could not reach the database: %s", e)
            database = 'unreachable'

        healthy = database == 'connected'
        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'message': 'Bakery API is running',
            'database': database
        }), 200 if healthy else 503

    @app.route('/')
    def index():
        """API root endpoint with available routes"""
        return jsonify({
            'message': 'Welcome to the Bakery Operations API',
            'version': '1.0.0',
            'endpoints': {
                'health': '/health',
                'auth': '/api/auth/*',
                'users': '/api/users/*',
                'products': '/api/products/*',
                'stores': '/api/stores/*',
                'orders': '/api/orders/*',
                'payments': '/api/payments/*',
                'tax': '/api/tax/*',
                'simple_distribution': '/api/simple-distribution/*',
                'delivery': '/api/delivery/*',
                'trips': '/api/distribution/trips/*',
                'dashboard': '/api/dashboard/*',
                'notifications': '/api/notifications/*'
            }
        }), 200

    return app


def register_error_handlers(app):

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': 'Bad request', 'message': str(error)}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({'error': 'Unauthorized', 'message': 'Authentication required'}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({
            'error': 'Forbidden',
            'message': 'You do not have permission to access this resource'
        }), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found', 'message': str(error)}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'message': str(error)}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({
            'error': 'Internal server error',
            'message': 'Something went wrong on our end'
        }), 500


def register_commands(app):

    @app.cli.command('create-db')
    def create_db():
        """Create database tables"""
        db.create_all()
        click.echo("Database tables created")

    @app.cli.command('drop-db')
    @click.confirmation_option(prompt='Are you sure you want to drop all tables?')
    def drop_db():
        """Drop all database tables"""
        db.drop_all()
        click.echo("All database tables dropped")

    @app.cli.command('seed-db')
    def seed_db():
        """Seed users, products, stores and sample orders"""
        from seed import seed_data
        seed_data()
        click.echo("Database seeded")

    @app.cli.command('seed-delivery')
    def seed_delivery():
        """Seed distribution trips, store visits and delivery schedules"""
        from seed import seed_delivery_data
        seed_delivery_data()
        click.echo("Delivery data seeded")
