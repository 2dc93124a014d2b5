from extensions import db
from bakery.models import User, Notification


class TestListing:
    def test_filters_and_search(self, client, manager, distributor, viewer, auth_headers) -> None:
        headers = auth_headers(manager)

        drivers = client.get('/api/users/?role=distributor', headers=headers).get_json()['users']
        assert [u['username'] for u in drivers] == ['driver']
        assert 'password_hash' not in drivers[0]

        found = client.get('/api/users/?search=vera', headers=headers).get_json()['users']
        assert [u['id'] for u in found] == [viewer.id]

    def test_managers_only(self, client, distributor, auth_headers) -> None:
        assert client.get('/api/users/', headers=auth_headers(distributor)).status_code == 403

    def test_statistics(self, client, admin, manager, distributor, make_user, auth_headers) -> None:
        make_user('parked', 'distributor', status='suspended')

        stats = client.get('/api/users/statistics', headers=auth_headers(manager)).get_json()

        assert stats['total_users'] == 4
        assert stats['by_role'] == {'admin': 1, 'manager': 1, 'distributor': 2, 'viewer': 0}
        assert stats['by_status']['suspended'] == 1

    def test_distributors_by_workload(self, client, manager, distributor, make_user, auth_headers,
                                      make_order) -> None:
        idle = make_user('idle', 'distributor')
        make_user('gone', 'distributor', status='inactive')
        order = make_order()
        client.post(f"/api/simple-distribution/orders/{order['id']}/assign", headers=auth_headers(manager),
                    json={'distributor_id': distributor.id})

        listed = client.get('/api/users/distributors', headers=auth_headers(manager)).get_json()['distributors']
        assert [d['id'] for d in listed] == [idle.id, distributor.id]

        detail = client.get(f'/api/users/distributors/{distributor.id}', headers=auth_headers(manager)).get_json()
        assert detail['active_orders'] == 1
        assert detail['delivered_orders'] == 0
        assert detail['distributor']['current_workload'] == 1

        assert client.get(f'/api/users/distributors/{manager.id}', headers=auth_headers(manager)).status_code == 404


class TestManagement:
    def test_admin_creates_user(self, client, admin, auth_headers) -> None:
        response = client.post('/api/users/', headers=auth_headers(admin), json={
            'username': 'newdriver', 'email': 'New@Bakery.test', 'password': 'secret123',
            'full_name': 'Nadia Driver', 'phone': '+963 933 555 002', 'performance_rating': 3.5,
        })

        body = response.get_json()['user']
        assert response.status_code == 201
        assert body['email'] == 'new@bakery.test'
        assert body['phone'] == '+963933555002'
        assert body['role'] == 'distributor'
        assert body['performance_rating'] == 3.5

    def test_create_rejections(self, client, admin, manager, distributor, auth_headers) -> None:
        headers = auth_headers(admin)

        response = client.post('/api/users/', headers=headers, json={'username': 'x'})
        assert set(response.get_json()['errors']) == {'email', 'password', 'full_name'}

        response = client.post('/api/users/', headers=headers, json={
            'username': 'driver', 'email': 'other@bakery.test', 'password': 'secret123', 'full_name': 'Dup'})
        assert response.status_code == 422

        response = client.post('/api/users/', headers=headers, json={
            'username': 'boss', 'email': 'boss@bakery.test', 'password': 'secret123',
            'full_name': 'The Boss', 'role': 'owner'})
        assert response.status_code == 422
        assert 'Invalid role' in response.get_json()['error']

        response = client.post('/api/users/', headers=auth_headers(manager), json={
            'username': 'sneaky', 'email': 'sneaky@bakery.test', 'password': 'secret123', 'full_name': 'Sneaky'})
        assert response.status_code == 403

    def test_update_user(self, client, admin, distributor, viewer, auth_headers) -> None:
        headers = auth_headers(admin)

        response = client.put(f'/api/users/{distributor.id}', headers=headers,
                              json={'full_name': 'Omar Al Driver', 'role': 'viewer', 'password': 'newpass1'})
        assert response.get_json()['user']['full_name'] == 'Omar Al Driver'
        assert db.session.get(User, distributor.id).check_password('newpass1')

        taken = client.put(f'/api/users/{distributor.id}', headers=headers, json={'email': 'viewer@bakery.test'})
        assert taken.status_code == 422

        short = client.put(f'/api/users/{distributor.id}', headers=headers, json={'password': '123'})
        assert short.status_code == 400

    def test_status_changes(self, client, admin, distributor, auth_headers) -> None:
        headers = auth_headers(admin)

        response = client.patch(f'/api/users/{distributor.id}/status', headers=headers, json={'status': 'suspended'})
        assert response.get_json()['user']['status'] == 'suspended'

        assert client.patch(f'/api/users/{distributor.id}/status', headers=headers,
                            json={'status': 'retired'}).status_code == 400
        assert client.patch(f'/api/users/{admin.id}/status', headers=headers,
                            json={'status': 'inactive'}).status_code == 400


class TestDelete:
    def test_user_without_history_is_deleted(self, client, admin, viewer, auth_headers) -> None:
        Notification.notify(viewer.id, 'PAYMENT', 'Payment received')
        db.session.commit()

        response = client.delete(f'/api/users/{viewer.id}', headers=auth_headers(admin))

        assert response.status_code == 200
        assert db.session.get(User, viewer.id) is None
        assert Notification.query.count() == 0

    def test_user_with_orders_is_deactivated(self, client, admin, manager, auth_headers, make_order) -> None:
        make_order()

        response = client.delete(f'/api/users/{manager.id}', headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['user']['status'] == 'inactive'
        assert db.session.get(User, manager.id) is not None

    def test_cannot_delete_self(self, client, admin, auth_headers) -> None:
        assert client.delete(f'/api/users/{admin.id}', headers=auth_headers(admin)).status_code == 400
