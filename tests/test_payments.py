import pytest

from extensions import db
from bakery.models import Order, Payment, Store


@pytest.fixture
def order(make_order):
    return make_order()


@pytest.fixture
def pay(client, auth_headers, manager, store):
    """Post a payment as the manager (or the given user) and return the response"""
    def _pay(user=None, **fields):
        payload = {'store_id': store.id}
        payload.update(fields)
        return client.post('/api/payments/', json=payload, headers=auth_headers(user or manager))
    return _pay


def _store(store):
    return db.session.get(Store, store.id)


def test_completed_payment_settles_order(pay, order, store) -> None:
    response = pay(order_id=order['id'], amount_eur=20, status='completed', payment_method='bank_transfer')

    assert response.status_code == 201
    payment = response.get_json()['payment']
    assert payment['payment_number'].startswith('PAY-')
    assert payment['status'] == 'completed'
    assert payment['currency'] == 'EUR'
    assert payment['completed_at'] is not None

    assert db.session.get(Order, order['id']).payment_status.value == 'paid'
    assert float(_store(store).current_balance_eur) == 0.0
    assert float(_store(store).total_payments_eur) == 20.0


def test_partial_payment(pay, order) -> None:
    pay(order_id=order['id'], amount_eur=5, status='completed')
    assert db.session.get(Order, order['id']).payment_status.value == 'partial'


def test_syp_and_mixed_payments_convert_to_eur(pay, order, store) -> None:
    syp = pay(order_id=order['id'], amount_syp=150000, status='completed').get_json()['payment']
    assert syp['currency'] == 'SYP'
    assert syp['value_eur'] == 10.0

    mixed = pay(order_id=order['id'], amount_eur=5, amount_syp=75000, status='completed').get_json()['payment']
    assert mixed['currency'] == 'MIXED'
    assert mixed['value_eur'] == 10.0

    assert db.session.get(Order, order['id']).payment_status.value == 'paid'
    assert float(_store(store).current_balance_eur) == 0.0


def test_pending_payment_does_not_touch_balance_until_completed(client, auth_headers, manager, pay, order, store):
    payment = pay(order_id=order['id'], amount_eur=20).get_json()['payment']
    assert payment['status'] == 'pending'
    assert float(_store(store).current_balance_eur) == 20.0

    response = client.patch(f"/api/payments/{payment['id']}/status", headers=auth_headers(manager),
                            json={'status': 'completed'})
    assert response.status_code == 200
    assert response.get_json()['order_payment_status'] == 'paid'
    assert float(_store(store).current_balance_eur) == 0.0


def test_refund_reverses_completed_payment(client, auth_headers, manager, pay, order, store) -> None:
    payment = pay(order_id=order['id'], amount_eur=20, status='completed').get_json()['payment']

    response = client.patch(f"/api/payments/{payment['id']}/status", headers=auth_headers(manager),
                            json={'status': 'refunded', 'notes': 'Returned bread'})

    assert response.status_code == 200
    assert response.get_json()['order_payment_status'] == 'pending'
    assert float(_store(store).current_balance_eur) == 20.0
    assert float(_store(store).total_payments_eur) == 0.0

    again = client.patch(f"/api/payments/{payment['id']}/status", headers=auth_headers(manager),
                         json={'status': 'completed'})
    assert again.status_code == 400


def test_validation(pay, client, auth_headers, manager) -> None:
    response = pay(amount_eur=0)
    assert response.status_code == 400
    assert 'amount' in response.get_json()['errors']

    response = pay(amount_eur=5, status='refunded')
    assert 'status' in response.get_json()['errors']

    response = pay(amount_eur=5, payment_method='barter')
    assert 'payment_method' in response.get_json()['errors']

    response = client.post('/api/payments/', headers=auth_headers(manager), json={'amount_eur': 5})
    assert response.get_json()['errors'] == {'store_id': 'Store is required'}

    response = pay(amount_eur=5, order_id=999)
    assert response.get_json()['errors']['order_id'] == 'Order not found'


def test_order_must_belong_to_store(pay, order) -> None:
    other = Store(name='Other Shop')
    db.session.add(other)
    db.session.commit()

    response = pay(order_id=order['id'], amount_eur=5, store_id=other.id)
    assert response.status_code == 400
    assert response.get_json()['errors']['order_id'] == 'Order does not belong to this store'


def test_distributor_sees_only_own_payments(client, auth_headers, distributor, pay, order) -> None:
    pay(amount_eur=3)
    mine = pay(user=distributor, amount_eur=4).get_json()['payment']
    assert mine['distributor_id'] == distributor.id

    listed = client.get('/api/payments/', headers=auth_headers(distributor)).get_json()['payments']
    assert [p['id'] for p in listed] == [mine['id']]


def test_update_only_while_pending(client, auth_headers, manager, pay) -> None:
    pending = pay(amount_eur=3).get_json()['payment']
    response = client.put(f"/api/payments/{pending['id']}", headers=auth_headers(manager),
                          json={'amount_eur': 4, 'payment_reference': 'TRX-1', 'status': 'completed'})
    body = response.get_json()['payment']
    assert response.status_code == 200
    assert body['amount_eur'] == 4.0
    assert body['payment_reference'] == 'TRX-1'
    assert body['status'] == 'pending'

    completed = pay(amount_eur=3, status='completed').get_json()['payment']
    response = client.put(f"/api/payments/{completed['id']}", headers=auth_headers(manager), json={'notes': 'x'})
    assert response.status_code == 400


def test_update_checks_amounts_against_stored_values(client, auth_headers, manager, pay) -> None:
    headers = auth_headers(manager)
    mixed = pay(amount_eur=5, amount_syp=75000).get_json()['payment']

    response = client.put(f"/api/payments/{mixed['id']}", headers=headers, json={'amount_eur': 0})
    assert response.status_code == 200
    assert response.get_json()['payment']['currency'] == 'SYP'

    response = client.put(f"/api/payments/{mixed['id']}", headers=headers, json={'amount_syp': 0})
    assert response.status_code == 400
    assert 'amount' in response.get_json()['errors']


def test_update_keeps_payment_date(client, auth_headers, manager, pay) -> None:
    pending = pay(amount_eur=3, payment_date='2030-05-01').get_json()['payment']

    for empty in ('', None):
        response = client.put(f"/api/payments/{pending['id']}", headers=auth_headers(manager),
                              json={'payment_date': empty})
        assert response.status_code == 400
        assert 'payment_date' in response.get_json()['errors']

    assert db.session.get(Payment, pending['id']).payment_date.isoformat() == '2030-05-01'


def test_verify_and_delete(client, auth_headers, manager, distributor, pay) -> None:
    completed = pay(amount_eur=3, status='completed').get_json()['payment']
    headers = auth_headers(manager)

    response = client.patch(f"/api/payments/{completed['id']}/verify", headers=headers,
                            json={'verification_status': 'verified'})
    assert response.get_json()['payment']['verification_status'] == 'verified'
    assert response.get_json()['payment']['verified_by'] == manager.id

    bad = client.patch(f"/api/payments/{completed['id']}/verify", headers=headers,
                       json={'verification_status': 'pending'})
    assert bad.status_code == 400

    assert client.patch(f"/api/payments/{completed['id']}/verify", headers=auth_headers(distributor),
                        json={}).status_code == 403

    assert client.delete(f"/api/payments/{completed['id']}", headers=headers).status_code == 400
    pending = pay(amount_eur=3).get_json()['payment']
    assert client.delete(f"/api/payments/{pending['id']}", headers=headers).status_code == 200


def test_statistics_and_store_summary(client, auth_headers, manager, pay, order, store) -> None:
    pay(order_id=order['id'], amount_eur=5, status='completed', payment_method='cash')
    pay(order_id=order['id'], amount_syp=75000, status='completed', payment_method='mobile_payment')
    pay(amount_eur=2)
    headers = auth_headers(manager)

    stats = client.get('/api/payments/statistics', headers=headers).get_json()
    assert stats['total_payments'] == 3
    assert stats['total_completed_eur'] == 10.0
    assert stats['by_status']['pending'] == 1
    assert stats['by_method']['mobile_payment'] == {'count': 1, 'amount_eur': 5.0}
    assert stats['by_currency']['SYP']['amount_syp'] == 75000.0
    assert stats['pending_verification'] == 2

    summary = client.get(f'/api/payments/store/{store.id}', headers=headers).get_json()['summary']
    assert summary['completed_payments'] == 2
    assert summary['total_paid_eur'] == 10.0
    assert summary['current_balance_eur'] == 10.0

    export = client.get('/api/payments/export', headers=headers)
    assert export.mimetype == 'text/csv'
    assert len(export.get_data(as_text=True).splitlines()) == 4


def test_order_with_payments_cannot_be_deleted(client, auth_headers, manager, pay, order) -> None:
    pay(order_id=order['id'], amount_eur=3)
    response = client.delete(f"/api/orders/{order['id']}", headers=auth_headers(manager))
    assert response.status_code == 400
