"""
Bakery Operations API
Main application entry point
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from bakery import create_app
from extensions import db
from bakery.models import (
    User, Store, Product, Order, OrderItem, Payment, DeliverySchedule,
    DistributionTrip, StoreVisit, Notification, TaxSetting
)

# Create Flask application instance
app = create_app()


# Flask shell context for easier debugging
@app.shell_context_processor
def make_shell_context():
    """
    Make database and models available in Flask shell
    Usage: flask shell
    """
    return {
        'db': db,
        'User': User,
        'Store': Store,
        'Product': Product,
        'Order': Order,
        'OrderItem': OrderItem,
        'Payment': Payment,
        'DeliverySchedule': DeliverySchedule,
        'DistributionTrip': DistributionTrip,
        'StoreVisit': StoreVisit,
        'Notification': Notification,
        'TaxSetting': TaxSetting,
    }


# Run application
if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_DEBUG', 'True').lower() == 'true'

    print(f"""
    Bakery Operations API
    Running on: http://127.0.0.1:{port}
    Debug mode: {debug}
    Database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}

    Available Commands:
    • flask create-db      - Create database tables
    • flask drop-db        - Drop all tables
    • flask seed-db        - Seed users, products, stores and orders
    • flask seed-delivery  - Seed trips, visits and delivery schedules
    • flask db upgrade     - Apply migrations
    """)

    app.run(
        host='0.0.0.0',
        port=port,
        debug=debug
    )
