from extensions import db
from bakery.models import Order, User, Notification


def _assign(client, headers, order_id, **body):
    return client.post(f'/api/simple-distribution/orders/{order_id}/assign', headers=headers, json=body)


def test_manual_assignment_confirms_draft(client, manager, distributor, auth_headers, make_order) -> None:
    order = make_order()

    response = _assign(client, auth_headers(manager), order['id'], distributor_id=distributor.id)

    body = response.get_json()
    assert response.status_code == 200
    assert body['auto_assigned'] is False
    assert body['order']['status'] == 'confirmed'
    assert body['order']['assigned_distributor_id'] == distributor.id
    assert db.session.get(User, distributor.id).current_workload == 1

    notification = Notification.query.filter_by(user_id=distributor.id).one()
    assert notification.type == 'ASSIGNMENT'


def test_auto_assignment_picks_least_loaded_then_best_rated(client, manager, distributor, make_user,
                                                           auth_headers, make_order) -> None:
    star = make_user('star', 'distributor', performance_rating=4.8)
    busy = make_user('busy', 'distributor', performance_rating=5.0)
    busy.current_workload = 3
    make_user('away', 'distributor', performance_rating=5.0, status='inactive')
    db.session.commit()
    headers = auth_headers(manager)

    first = _assign(client, headers, make_order()['id']).get_json()
    assert first['auto_assigned'] is True
    assert first['distributor']['id'] == star.id

    second = _assign(client, headers, make_order()['id']).get_json()
    assert second['distributor']['id'] == distributor.id


def test_auto_assignment_without_distributors_is_409(client, manager, auth_headers, make_order) -> None:
    response = _assign(client, auth_headers(manager), make_order()['id'])
    assert response.status_code == 409


def test_reassignment_moves_workload(client, manager, distributor, make_user, auth_headers, make_order) -> None:
    other = make_user('other', 'distributor')
    order = make_order()
    headers = auth_headers(manager)

    _assign(client, headers, order['id'], distributor_id=distributor.id)
    _assign(client, headers, order['id'], distributor_id=other.id)

    assert db.session.get(User, distributor.id).current_workload == 0
    assert db.session.get(User, other.id).current_workload == 1


def test_assignment_errors(client, manager, viewer, distributor, auth_headers, make_order) -> None:
    order = make_order()
    headers = auth_headers(manager)

    assert _assign(client, headers, order['id'], distributor_id=viewer.id).status_code == 400
    assert _assign(client, headers, 999, distributor_id=distributor.id).status_code == 404
    assert _assign(client, auth_headers(distributor), order['id']).status_code == 403

    client.patch(f"/api/orders/{order['id']}/status", headers=headers, json={'status': 'cancelled'})
    response = _assign(client, headers, order['id'], distributor_id=distributor.id)
    assert response.status_code == 400
    assert 'cancelled' in response.get_json()['error']


def test_unassign(client, manager, distributor, auth_headers, make_order) -> None:
    order = make_order()
    headers = auth_headers(manager)
    _assign(client, headers, order['id'], distributor_id=distributor.id)

    response = client.post(f"/api/simple-distribution/orders/{order['id']}/unassign", headers=headers)

    assert response.status_code == 200
    assert response.get_json()['order']['assigned_distributor_id'] is None
    assert db.session.get(User, distributor.id).current_workload == 0

    again = client.post(f"/api/simple-distribution/orders/{order['id']}/unassign", headers=headers)
    assert again.status_code == 400


def test_distributor_work_list_is_prioritised(client, manager, distributor, make_user, auth_headers, make_order):
    headers = auth_headers(manager)
    normal = make_order(delivery_date='2030-01-02')
    urgent = make_order(priority='urgent')
    early = make_order(delivery_date='2030-01-01')
    done = make_order()
    for order in (normal, urgent, early, done):
        _assign(client, headers, order['id'], distributor_id=distributor.id)
    for status in ('in_progress', 'delivered'):
        client.patch(f"/api/orders/{done['id']}/status", headers=headers, json={'status': status})

    response = client.get(f'/api/simple-distribution/distributors/{distributor.id}/orders',
                          headers=auth_headers(distributor))
    body = response.get_json()
    assert response.status_code == 200
    assert [o['id'] for o in body['orders']] == [urgent['id'], early['id'], normal['id']]

    everything = client.get(f'/api/simple-distribution/distributors/{distributor.id}/orders?status=all',
                            headers=headers).get_json()
    assert everything['count'] == 4

    other = make_user('other', 'distributor')
    forbidden = client.get(f'/api/simple-distribution/distributors/{distributor.id}/orders',
                           headers=auth_headers(other))
    assert forbidden.status_code == 403


def test_stats(client, manager, distributor, auth_headers, make_order) -> None:
    assigned = make_order()
    make_order()
    headers = auth_headers(manager)
    _assign(client, headers, assigned['id'], distributor_id=distributor.id)

    stats = client.get('/api/simple-distribution/stats', headers=headers).get_json()

    assert stats['total_orders'] == 2
    assert stats['assigned_orders'] == 1
    assert stats['unassigned_pending'] == 1
    assert stats['distributors'][0]['active_orders'] == 1
    assert db.session.get(Order, assigned['id']).assigned_distributor_id == distributor.id
