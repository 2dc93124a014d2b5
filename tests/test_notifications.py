from extensions import db
from bakery.models import Notification


def _notify(user, type='PAYMENT', message='Payment received'):
    notification = Notification.notify(user.id, type, message)
    db.session.commit()
    return notification


def test_list_own_notifications_newest_first(client, manager, viewer, auth_headers) -> None:
    first = _notify(manager, message='First')
    second = _notify(manager, message='Second')
    _notify(viewer)

    body = client.get('/api/notifications/', headers=auth_headers(manager)).get_json()

    assert [n['id'] for n in body['notifications']] == [second.id, first.id]
    assert body['notifications'][0]['is_read'] is False
    assert body['pagination']['total'] == 2


def test_order_events_create_notifications(client, manager, distributor, auth_headers, make_order) -> None:
    order = make_order()
    client.post(f"/api/simple-distribution/orders/{order['id']}/assign", headers=auth_headers(manager),
                json={'distributor_id': distributor.id})

    body = client.get('/api/notifications/', headers=auth_headers(distributor)).get_json()

    assert [n['type'] for n in body['notifications']] == ['ASSIGNMENT']
    assert body['notifications'][0]['order_id'] == order['id']
    assert order['order_number'] in body['notifications'][0]['message']


def test_mark_read_and_unread_count(client, manager, viewer, auth_headers) -> None:
    headers = auth_headers(manager)
    mine = _notify(manager)
    _notify(manager)
    theirs = _notify(viewer)

    assert client.get('/api/notifications/unread-count', headers=headers).get_json() == {'unread_count': 2}

    response = client.patch(f'/api/notifications/{mine.id}/read', headers=headers)
    assert response.get_json()['notification']['is_read'] is True
    assert response.get_json()['notification']['read_at'] is not None

    unread = client.get('/api/notifications/?unread_only=true', headers=headers).get_json()['notifications']
    assert len(unread) == 1

    assert client.patch(f'/api/notifications/{theirs.id}/read', headers=headers).status_code == 403
    assert client.patch('/api/notifications/999/read', headers=headers).status_code == 404


def test_mark_all_read(client, manager, auth_headers) -> None:
    headers = auth_headers(manager)
    _notify(manager)
    _notify(manager)

    response = client.patch('/api/notifications/read-all', headers=headers)

    assert response.get_json()['message'] == '2 notification(s) marked as read'
    assert client.get('/api/notifications/unread-count', headers=headers).get_json()['unread_count'] == 0


def test_notify_without_user_is_skipped(app) -> None:
    assert Notification.notify(None, 'PAYMENT', 'Nobody to tell') is None
