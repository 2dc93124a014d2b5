from datetime import datetime
from decimal import Decimal

import pytest

from extensions import db
from bakery.models import Order, Payment, Store, StoreVisit

TODAY = datetime.utcnow().date().isoformat()
BASE = '/api/distribution/trips'


@pytest.fixture
def second_store(app):
    store = Store(name='Mezzeh Bakery Corner', address='Mezzeh, Damascus',
                  latitude=Decimal('33.5138'), longitude=Decimal('36.2765'), category='bakery')
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture
def assigned_order(client, manager, distributor, auth_headers, make_order):
    order = make_order()
    client.post(f"/api/simple-distribution/orders/{order['id']}/assign", headers=auth_headers(manager),
                json={'distributor_id': distributor.id})
    return order


@pytest.fixture
def trip(client, manager, distributor, auth_headers, store, second_store, assigned_order):
    response = client.post(f'{BASE}/', headers=auth_headers(manager), json={
        'distributor_id': distributor.id,
        'trip_date': TODAY,
        'notes': 'Morning round',
        'store_visits': [
            {'store_id': store.id, 'order_id': assigned_order['id']},
            {'store_id': second_store.id},
        ],
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()['trip']


def _post(client, headers, path, **body):
    return client.post(f'{BASE}{path}', headers=headers, json=body)


class TestPlanning:
    def test_create_trip_with_visits(self, trip, assigned_order) -> None:
        assert trip['trip_number'].startswith('TRIP-')
        assert trip['trip_number'].endswith('-0001')
        assert trip['trip_status'] == 'planned'
        assert trip['visits_count'] == 2
        first, second = trip['visits']
        assert first['visit_order'] == 1
        assert first['order_value_eur'] == assigned_order['final_amount_eur']
        assert second['visit_order'] == 2
        assert second['order_id'] is None

    def test_create_trip_validation(self, client, manager, viewer, distributor, make_user, auth_headers,
                                    second_store, assigned_order) -> None:
        headers = auth_headers(manager)

        response = client.post(f'{BASE}/', headers=headers, json={'trip_date': 'today'})
        assert set(response.get_json()['errors']) == {'distributor_id', 'trip_date'}

        response = client.post(f'{BASE}/', headers=headers, json={'distributor_id': viewer.id, 'trip_date': TODAY})
        assert 'distributor_id' in response.get_json()['errors']

        asleep = make_user('asleep', 'distributor', status='inactive')
        response = client.post(f'{BASE}/', headers=headers, json={'distributor_id': asleep.id, 'trip_date': TODAY})
        assert response.status_code == 400

        response = client.post(f'{BASE}/', headers=headers, json={
            'distributor_id': distributor.id, 'trip_date': TODAY,
            'store_visits': [{'store_id': second_store.id, 'order_id': assigned_order['id']}, {'store_id': 999}],
        })
        errors = response.get_json()['errors']['store_visits']
        assert set(errors) == {'0', '1'}

    def test_update_only_while_planned(self, client, manager, distributor, auth_headers, trip) -> None:
        headers = auth_headers(manager)
        response = client.put(f"{BASE}/{trip['id']}", headers=headers, json={'notes': 'Changed'})
        assert response.get_json()['trip']['notes'] == 'Changed'

        _post(client, auth_headers(distributor), f"/{trip['id']}/start")
        response = client.put(f"{BASE}/{trip['id']}", headers=headers, json={'notes': 'Too late'})
        assert response.status_code == 400

    def test_today_and_visibility(self, client, distributor, make_user, auth_headers, trip) -> None:
        today = client.get(f'{BASE}/today', headers=auth_headers(distributor)).get_json()
        assert [t['id'] for t in today['trips']] == [trip['id']]

        stranger = auth_headers(make_user('stranger', 'distributor'))
        assert client.get(f'{BASE}/', headers=stranger).get_json()['trips'] == []
        assert client.get(f"{BASE}/{trip['id']}", headers=stranger).status_code == 403
        assert _post(client, stranger, f"/{trip['id']}/start").status_code == 403


class TestRunningATrip:
    def test_full_round(self, client, distributor, auth_headers, trip, assigned_order, store) -> None:
        headers = auth_headers(distributor)
        first, second = trip['visits']

        assert _post(client, headers, f"/{trip['id']}/visits/{first['id']}/arrive").status_code == 400

        started = _post(client, headers, f"/{trip['id']}/start").get_json()['trip']
        assert started['trip_status'] == 'in_progress'
        assert started['start_time'] is not None

        arrived = _post(client, headers, f"/{trip['id']}/visits/{first['id']}/arrive").get_json()['visit']
        assert arrived['visit_status'] == 'in_progress'

        response = _post(client, headers, f"/{trip['id']}/visits/{first['id']}/complete",
                         delivery_successful=True, payment_collected_eur=20)
        body = response.get_json()
        assert response.status_code == 200
        assert body['visit']['visit_status'] == 'completed'
        assert body['order_status'] == 'delivered'
        assert body['payment']['payment_type'] == 'full'
        assert body['payment']['visit_id'] == first['id']
        assert body['payment']['distributor_id'] == distributor.id

        order = db.session.get(Order, assigned_order['id'])
        assert order.payment_status.value == 'paid'
        assert float(db.session.get(Store, store.id).current_balance_eur) == 0.0

        failed = _post(client, headers, f"/{trip['id']}/visits/{second['id']}/complete",
                       delivery_successful=False, problems_encountered='Shop closed').get_json()
        assert failed['visit']['visit_status'] == 'failed'
        assert failed['visit']['problems_encountered'] == ['Shop closed']
        assert failed['payment'] is None

        done = _post(client, headers, f"/{trip['id']}/complete", fuel_consumption=3.5).get_json()['trip']
        assert done['trip_status'] == 'completed'
        assert done['completed_visits'] == 1
        assert done['fuel_consumption'] == 3.5
        assert 2 < done['total_distance'] < 3

    def test_partial_collection(self, client, distributor, auth_headers, trip) -> None:
        headers = auth_headers(distributor)
        first = trip['visits'][0]
        _post(client, headers, f"/{trip['id']}/start")

        body = _post(client, headers, f"/{trip['id']}/visits/{first['id']}/complete",
                     payment_collected_eur=5).get_json()

        assert body['payment']['payment_type'] == 'partial'
        assert db.session.get(Order, first['order_id']).payment_status.value == 'partial'

    def test_negative_collection_is_rejected(self, client, distributor, auth_headers, trip) -> None:
        headers = auth_headers(distributor)
        _post(client, headers, f"/{trip['id']}/start")
        response = _post(client, headers, f"/{trip['id']}/visits/{trip['visits'][0]['id']}/complete",
                         payment_collected_eur=-1)
        assert response.status_code == 400

    def test_complete_with_reported_distance(self, client, distributor, auth_headers, trip) -> None:
        headers = auth_headers(distributor)
        _post(client, headers, f"/{trip['id']}/start")

        done = _post(client, headers, f"/{trip['id']}/complete", total_distance=12.4).get_json()['trip']

        assert done['total_distance'] == 12.4
        assert {v['visit_status'] for v in done['visits']} == {'cancelled'}

    def test_cannot_complete_planned_trip(self, client, distributor, auth_headers, trip) -> None:
        response = _post(client, auth_headers(distributor), f"/{trip['id']}/complete")
        assert response.status_code == 400


class TestCancelAndDelete:
    def test_cancel_marks_visits_cancelled(self, client, distributor, auth_headers, trip) -> None:
        response = _post(client, auth_headers(distributor), f"/{trip['id']}/cancel", reason='Van broke down')

        body = response.get_json()['trip']
        assert body['trip_status'] == 'cancelled'
        assert 'Van broke down' in body['notes']
        assert {v['visit_status'] for v in body['visits']} == {'cancelled'}

        assert _post(client, auth_headers(distributor), f"/{trip['id']}/cancel").status_code == 400

    def test_delete_rules(self, client, manager, distributor, auth_headers, trip) -> None:
        headers = auth_headers(manager)
        _post(client, auth_headers(distributor), f"/{trip['id']}/start")
        assert client.delete(f"{BASE}/{trip['id']}", headers=headers).status_code == 400

        _post(client, auth_headers(distributor), f"/{trip['id']}/cancel")
        assert client.delete(f"{BASE}/{trip['id']}", headers=headers).status_code == 200
        assert StoreVisit.query.count() == 0

    def test_delete_keeps_collected_payments(self, client, manager, distributor, auth_headers, trip) -> None:
        driver = auth_headers(distributor)
        _post(client, driver, f"/{trip['id']}/start")
        _post(client, driver, f"/{trip['id']}/visits/{trip['visits'][0]['id']}/complete", payment_collected_eur=20)
        _post(client, driver, f"/{trip['id']}/cancel")

        assert client.delete(f"{BASE}/{trip['id']}", headers=auth_headers(manager)).status_code == 200
        payment = Payment.query.one()
        assert payment.visit_id is None


def test_statistics(client, manager, distributor, auth_headers, trip) -> None:
    driver = auth_headers(distributor)
    first, second = trip['visits']
    _post(client, driver, f"/{trip['id']}/start")
    _post(client, driver, f"/{trip['id']}/visits/{first['id']}/complete")
    _post(client, driver, f"/{trip['id']}/visits/{second['id']}/complete", delivery_successful=False)
    _post(client, driver, f"/{trip['id']}/complete", total_distance=10)

    stats = client.get(f'{BASE}/statistics', headers=auth_headers(manager)).get_json()

    assert stats['total_trips'] == 1
    assert stats['by_status']['completed'] == 1
    assert stats['total_distance_km'] == 10.0
    assert stats['total_visits'] == 2
    assert stats['visit_success_rate'] == 50.0
