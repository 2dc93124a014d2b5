"""
Tests for the /api/auth resources and the role guards.
"""

from extensions import db
from bakery.models import User, TokenBlocklist


class TestLogin:
    def test_login_with_username_returns_tokens(self, client, manager) -> None:
        response = client.post('/api/auth/login', json={'login': 'manager', 'password': 'secret123'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['access_token']
        assert body['refresh_token']
        assert body['user']['username'] == 'manager'
        assert db.session.get(User, manager.id).last_login is not None

    def test_login_with_email(self, client, manager) -> None:
        response = client.post('/api/auth/login',
                               json={'login': 'MANAGER@bakery.test', 'password': 'secret123'})
        assert response.status_code == 200

    def test_bad_password_is_401(self, client, manager) -> None:
        response = client.post('/api/auth/login', json={'login': 'manager', 'password': 'wrong'})
        assert response.status_code == 401

    def test_inactive_user_is_403(self, client, make_user) -> None:
        make_user('sleepy', 'distributor', status='inactive')
        response = client.post('/api/auth/login', json={'login': 'sleepy', 'password': 'secret123'})
        assert response.status_code == 403

    def test_missing_fields_is_400(self, client) -> None:
        assert client.post('/api/auth/login', json={'login': 'x'}).status_code == 400


class TestRegister:
    def test_admin_registers_user(self, client, admin, auth_headers) -> None:
        response = client.post('/api/auth/register', headers=auth_headers(admin), json={
            'username': 'newdriver',
            'email': 'NewDriver@bakery.test',
            'password': 'secret123',
            'full_name': 'New Driver',
            'phone': '+963944222333',
            'role': 'distributor',
        })

        assert response.status_code == 201
        user = response.get_json()['user']
        assert user['email'] == 'newdriver@bakery.test'
        assert user['phone'] == '+963944222333'

    def test_manager_cannot_register(self, client, manager, auth_headers) -> None:
        response = client.post('/api/auth/register', headers=auth_headers(manager), json={
            'username': 'someone', 'email': 'someone@bakery.test',
            'password': 'secret123', 'full_name': 'Someone',
        })
        assert response.status_code == 403

    def test_duplicate_username_is_422(self, client, admin, auth_headers) -> None:
        response = client.post('/api/auth/register', headers=auth_headers(admin), json={
            'username': 'admin', 'email': 'other@bakery.test',
            'password': 'secret123', 'full_name': 'Other Admin',
        })
        assert response.status_code == 422

    def test_phone_without_country_code_is_422(self, client, admin, auth_headers) -> None:
        response = client.post('/api/auth/register', headers=auth_headers(admin), json={
            'username': 'localphone', 'email': 'local@bakery.test', 'password': 'secret123',
            'full_name': 'Local Phone', 'phone': '0944222333',
        })
        assert response.status_code == 422

    def test_short_password_is_422(self, client, admin, auth_headers) -> None:
        response = client.post('/api/auth/register', headers=auth_headers(admin), json={
            'username': 'shorty', 'email': 'shorty@bakery.test',
            'password': '123', 'full_name': 'Shorty',
        })
        assert response.status_code == 422


class TestSession:
    def test_me_requires_token(self, client) -> None:
        assert client.get('/api/auth/me').status_code == 401

    def test_me_returns_current_user(self, client, viewer, auth_headers) -> None:
        response = client.get('/api/auth/me', headers=auth_headers(viewer))
        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'viewer'

    def test_logout_revokes_token(self, client, viewer, auth_headers) -> None:
        headers = auth_headers(viewer)

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert TokenBlocklist.query.count() == 1
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_refresh_issues_access_token(self, client, manager) -> None:
        login = client.post('/api/auth/login', json={'login': 'manager', 'password': 'secret123'}).get_json()

        response = client.post('/api/auth/refresh',
                               headers={'Authorization': f"Bearer {login['refresh_token']}"})

        assert response.status_code == 200
        token = response.get_json()['access_token']
        me = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert me.status_code == 200

    def test_change_password(self, client, viewer, auth_headers) -> None:
        headers = auth_headers(viewer)
        wrong = client.put('/api/auth/change-password', headers=headers,
                           json={'current_password': 'nope', 'new_password': 'another1'})
        assert wrong.status_code == 400

        ok = client.put('/api/auth/change-password', headers=headers,
                        json={'current_password': 'secret123', 'new_password': 'another1'})
        assert ok.status_code == 200
        login = client.post('/api/auth/login', json={'login': 'viewer', 'password': 'another1'})
        assert login.status_code == 200

    def test_update_profile(self, client, viewer, auth_headers) -> None:
        response = client.put('/api/auth/profile', headers=auth_headers(viewer),
                              json={'full_name': 'Vera Renamed', 'phone': '+963955333444'})
        assert response.status_code == 200
        assert response.get_json()['user']['full_name'] == 'Vera Renamed'


class TestRoleGuards:
    def test_viewer_cannot_create_products(self, client, viewer, auth_headers) -> None:
        response = client.post('/api/products/', headers=auth_headers(viewer),
                               json={'name': 'Bagel', 'price_eur': 1})
        assert response.status_code == 403
        assert response.get_json()['message'] == 'You are not authorized to access this resource'

    def test_unknown_route_returns_json_404(self, client) -> None:
        response = client.get('/api/does-not-exist')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Resource not found'
