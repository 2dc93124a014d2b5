import os
from datetime import timedelta


def _database_url():
    db_url = os.getenv('DATABASE_URL')
    if db_url:
        # Legacy URLs without a driver default to PyMySQL
        if db_url.startswith('mysql://'):
            db_url = db_url.replace('mysql://', 'mysql+pymysql://', 1)
        return db_url

    host = os.getenv('MYSQL_HOST', 'localhost')
    port = os.getenv('MYSQL_PORT', '3306')
    user = os.getenv('MYSQL_USER', 'root')
    password = os.getenv('MYSQL_PASSWORD', 'password')
    database = os.getenv('MYSQL_DATABASE', 'bakery')
    return f'mysql+pymysql://{user}:{password}@{host}:{port}/{database}?charset=utf8mb4'


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 280,
        'pool_size': 5,
        'max_overflow': 10,
    }

    # JWT
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'your-secret-key-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=30)

    # Google Maps
    GOOGLE_MAPS_API_KEY = os.getenv('GOOGLE_MAPS_API_KEY')

    # Email
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@bakery.local')

    # Business settings
    DEFAULT_EXCHANGE_RATE = float(os.getenv('DEFAULT_EXCHANGE_RATE', 15000))  # SYP per EUR
    DEFAULT_TAX_RATE = float(os.getenv('DEFAULT_TAX_RATE', 0))  # percent
    DAILY_CAPACITY_PER_DISTRIBUTOR = int(os.getenv('DAILY_CAPACITY_PER_DISTRIBUTOR', 10))
    MAX_RESCHEDULES = int(os.getenv('MAX_RESCHEDULES', 3))

    # Flask-RESTful swallows JWT errors unless exceptions propagate
    PROPAGATE_EXCEPTIONS = True

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = 'test-secret-key-with-enough-length-for-hs256'
    GOOGLE_MAPS_API_KEY = None
    MAIL_SUPPRESS_SEND = True
    BCRYPT_LOG_ROUNDS = 4
    DEFAULT_EXCHANGE_RATE = 15000.0
    DEFAULT_TAX_RATE = 0.0
    DAILY_CAPACITY_PER_DISTRIBUTOR = 10
    MAX_RESCHEDULES = 3
    LOG_LEVEL = 'WARNING'
