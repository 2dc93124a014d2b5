"""Shared pytest fixtures for the API test suite.

Every test gets a fresh in-memory SQLite database inside an application
context, so fixtures can create rows directly through the models.

Fixture overview
----------------
app / client          - application built from TestingConfig and its test client
admin, manager,
distributor, viewer   - one active user per role
auth_headers          - callable building a bearer header for a user
store, product        - an active store with coordinates and an active product
make_order            - callable creating an order through the API
"""

from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from bakery import create_app
from config import TestingConfig
from extensions import db
from bakery.models import User, Store, Product


# ── Application ──────────────────────────────────────────────────────────────


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ── Users and auth ───────────────────────────────────────────────────────────


def _create_user(username, role, full_name, performance_rating=0.0, status='active'):
    user = User(
        username=username,
        email=f'{username}@bakery.test',
        full_name=full_name,
        role=role,
        status=status,
        performance_rating=performance_rating,
    )
    user.set_password('secret123')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def make_user(app):
    """Create an extra user: make_user('dist2', 'distributor', performance_rating=4.5)."""
    def _make(username, role='distributor', full_name=None, **kwargs):
        return _create_user(username, role, full_name or username.title(), **kwargs)
    return _make


@pytest.fixture
def admin(app):
    return _create_user('admin', 'admin', 'Admin User')


@pytest.fixture
def manager(app):
    return _create_user('manager', 'manager', 'Maya Manager')


@pytest.fixture
def distributor(app):
    return _create_user('driver', 'distributor', 'Omar Driver', performance_rating=4.0)


@pytest.fixture
def viewer(app):
    return _create_user('viewer', 'viewer', 'Vera Viewer')


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}
    return _headers


# ── Catalogue ────────────────────────────────────────────────────────────────


@pytest.fixture
def store(app):
    store = Store(
        name='Al Salam Market',
        owner_name='Khaled Salam',
        phone='+963933555001',
        email='salam@stores.test',
        address='Baghdad Street, Damascus',
        latitude=Decimal('33.5182'),
        longitude=Decimal('36.3020'),
        category='supermarket',
    )
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture
def product(app):
    product = Product(
        name='White Bread Loaf',
        category='bread',
        unit='loaf',
        price_eur=Decimal('2.00'),
        price_syp=Decimal('30000.00'),
        stock_quantity=100,
        minimum_stock=10,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def make_order(client, auth_headers, manager, store, product):
    """Create an order through the API and return its JSON.

    Defaults to 10 loaves at 2.00 EUR, i.e. a 20.00 EUR order.
    """
    def _make(quantity=10, user=None, **extra):
        payload = {
            'store_id': store.id,
            'items': [{'product_id': product.id, 'quantity': quantity}],
        }
        payload.update(extra)
        response = client.post('/api/orders/', json=payload, headers=auth_headers(user or manager))
        assert response.status_code == 201, response.get_json()
        return response.get_json()['order']
    return _make
