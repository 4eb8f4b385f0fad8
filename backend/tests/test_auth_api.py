"""
Authentication and role-gating tests over the HTTP API.
"""

import pytest

from boutique.services import auth_service
from conftest import PASSWORD, get_auth_token


class TestLogin:
    def test_login_returns_token(self, client, salesperson):
        resp = client.post('/api/auth/login', json={'username': 'ana', 'password': PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body['token']) == 64
        assert body['user']['role'] == 'salesperson'
        assert 'password_hash' not in body['user']

    @pytest.mark.parametrize("password", ["wrong", ""])
    def test_bad_credentials(self, client, salesperson, password):
        resp = client.post('/api/auth/login', json={'username': 'ana', 'password': password})
        assert resp.status_code in (400, 401)

    def test_unknown_user_same_message_as_bad_password(self, client, salesperson):
        a = client.post('/api/auth/login', json={'username': 'ghost', 'password': PASSWORD}).get_json()
        b = client.post('/api/auth/login', json={'username': 'ana', 'password': 'Wrong123!'}).get_json()
        assert a['message'] == b['message']

    def test_deactivated_user_cannot_log_in(self, client, salesperson):
        auth_service.deactivate_user(salesperson.id)
        resp = client.post('/api/auth/login', json={'username': 'ana', 'password': PASSWORD})
        assert resp.status_code == 401


class TestSession:
    def test_me_and_logout(self, client, salesperson):
        token = get_auth_token(client, 'ana')
        headers = {'Authorization': f'Bearer {token}'}

        me = client.get('/api/auth/me', headers=headers)
        assert me.status_code == 200
        assert me.get_json()['user']['username'] == 'ana'

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_deactivation_revokes_live_tokens(self, client, salesperson):
        headers = {'Authorization': f'Bearer {get_auth_token(client, "ana")}'}
        auth_service.deactivate_user(salesperson.id)
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    @pytest.mark.parametrize("header", [None, "Token abc", "Bearer not-a-real-token"])
    def test_missing_or_invalid_token(self, client, header):
        headers = {'Authorization': header} if header else {}
        resp = client.get('/api/products', headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'authentication_error'


class TestRoleGating:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/sales"),
            ("POST", "/api/returns"),
            ("POST", "/api/credits/apply"),
            ("GET", "/api/users"),
        ],
    )
    def test_stock_clerk_denied(self, client, clerk_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=clerk_headers, json={})
        assert resp.status_code == 403
        assert resp.get_json()['error'] == 'permission_denied'

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/stock/add"),
            ("POST", "/api/products"),
            ("POST", "/api/counts/start"),
            ("POST", "/api/returns/1/approve"),
            ("POST", "/api/credits"),
        ],
    )
    def test_salesperson_denied(self, client, salesperson_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=salesperson_headers, json={})
        assert resp.status_code == 403

    def test_admin_passes_every_role(self, client, admin_headers, product):
        resp = client.post(
            '/api/stock/add',
            headers=admin_headers,
            json={'product_id': product.id, 'quantity': 1, 'reason': 'delivery'},
        )
        assert resp.status_code == 201

    def test_reads_open_to_any_role(self, client, clerk_headers):
        assert client.get('/api/sales', headers=clerk_headers).status_code == 200
        assert client.get('/api/reports/dashboard', headers=clerk_headers).status_code == 200


class TestUserAdmin:
    def test_create_and_update_user(self, client, admin_headers):
        resp = client.post('/api/users', headers=admin_headers, json={
            'username': 'carla', 'name': 'Carla', 'password': PASSWORD, 'role': 'stock_clerk',
        })
        assert resp.status_code == 201
        user_id = resp.get_json()['user']['id']

        resp = client.patch(f'/api/users/{user_id}', headers=admin_headers, json={'role': 'salesperson'})
        assert resp.get_json()['user']['role'] == 'salesperson'

    def test_weak_password_rejected(self, client, admin_headers):
        resp = client.post('/api/users', headers=admin_headers, json={
            'username': 'weak', 'name': 'Weak', 'password': 'password', 'role': 'salesperson',
        })
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'weak_password'

    def test_duplicate_username(self, client, admin_headers, salesperson):
        resp = client.post('/api/users', headers=admin_headers, json={
            'username': 'ana', 'name': 'Other Ana', 'password': PASSWORD, 'role': 'salesperson',
        })
        assert resp.status_code == 409


class TestSystem:
    def test_health(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.get_json()['checks']['database']['status'] == 'healthy'

    def test_version(self, client):
        assert client.get('/version').get_json()['api_version']
