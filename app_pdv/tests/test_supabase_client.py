"""
Pruebas con el cliente real de supabase-py.

El proveedor se reemplaza por un httpx.MockTransport: se verifica qué
requests arma el SDK (ruta, token) en cierre de sesión, renovación y
alta de usuarios.
"""
import json
import time

import httpx
import pytest

from conftest import MAIN_URL, make_token
from app_pdv.errors import AuthenticationError
from app_pdv.repositories import AuthGateway, UserRepository
from app_pdv.repositories.client import build_client, default_client_factory
from app_pdv.services import UserService

ANON_KEY = make_token('anon', expires_in=86400)


def user_json(user_id, email):
    return {
        'id': user_id, 'aud': 'authenticated', 'role': 'authenticated', 'email': email,
        'app_metadata': {}, 'user_metadata': {'name': 'Caja'},
        'created_at': '2026-10-19T10:00:00Z',
    }


def session_json(user_id, email, refresh_token):
    return {
        'access_token': make_token(user_id), 'refresh_token': refresh_token,
        'expires_in': 3600, 'expires_at': int(time.time()) + 3600,
        'token_type': 'bearer', 'user': user_json(user_id, email),
    }


class FakeProvider:
    """Responde por (método, ruta) y guarda cada request recibida."""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def route(self, method, path, status, body=None):
        self.routes[(method, path)] = (status, body)

    def __call__(self, request):
        request.read()
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {'message': 'sin ruta'}))
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def find(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def provider(monkeypatch):
    stub = FakeProvider()
    transport = httpx.MockTransport(stub)
    monkeypatch.setattr(httpx.HTTPTransport, 'handle_request',
                        lambda self, request: transport.handle_request(request))
    return stub


def new_client(access_token=None):
    return build_client(default_client_factory, MAIN_URL, ANON_KEY, access_token)


# ═══════════════════════════════════════════════════════════════════════════
# CIERRE DE SESIÓN
# ═══════════════════════════════════════════════════════════════════════════

def test_logout_reaches_the_provider_from_a_fresh_client(provider):
    provider.route('POST', '/auth/v1/logout', 204)
    token = make_token('u1')

    AuthGateway(new_client(token)).sign_out(token)

    [request] = provider.find('POST', '/auth/v1/logout')
    assert request.headers['authorization'] == f'Bearer {token}'


def test_fresh_client_without_token_has_no_session_to_close(provider):
    AuthGateway(new_client()).sign_out()
    assert provider.requests == []


# ═══════════════════════════════════════════════════════════════════════════
# RENOVACIÓN
# ═══════════════════════════════════════════════════════════════════════════

def test_refresh_sends_refresh_token_and_uses_the_new_access_token(provider):
    provider.route('POST', '/auth/v1/token', 200, session_json('u1', 'caja@pdv.test', 'refresh-2'))
    provider.route('GET', '/rest/v1/profiles', 200, [])
    client = new_client(make_token('u1', expires_in=-60))

    tokens = AuthGateway(client).refresh('refresh-1')
    UserRepository(client).get_user('u1')

    [refresh] = provider.find('POST', '/auth/v1/token')
    assert refresh.url.params['grant_type'] == 'refresh_token'
    assert json.loads(refresh.content) == {'refresh_token': 'refresh-1'}
    assert tokens['refresh_token'] == 'refresh-2'

    [query] = provider.find('GET', '/rest/v1/profiles')
    assert query.headers['authorization'] == f"Bearer {tokens['access_token']}"


def test_revoked_refresh_token_is_an_authentication_error(provider):
    provider.route('POST', '/auth/v1/token', 400, {
        'code': 'refresh_token_not_found', 'error_code': 'refresh_token_not_found',
        'msg': 'Invalid Refresh Token: Refresh Token Not Found',
    })

    with pytest.raises(AuthenticationError):
        AuthGateway(new_client()).refresh('revocado')


# ═══════════════════════════════════════════════════════════════════════════
# ALTA DE USUARIOS POR UN ADMINISTRADOR
# ═══════════════════════════════════════════════════════════════════════════

def test_created_profile_is_inserted_with_the_admin_token(provider):
    provider.route('POST', '/auth/v1/signup', 200, session_json('u-nuevo', 'caja@pdv.test', 'r'))
    provider.route('POST', '/rest/v1/profiles', 201, [{
        'id': 'u-nuevo', 'email': 'caja@pdv.test', 'name': 'Caja', 'role': 'user',
        'active': True, 'permissions': {},
    }])
    admin_token = make_token('u-admin')
    client = new_client(admin_token)
    gateway = AuthGateway(client, client_factory=new_client)

    UserService(UserRepository(client), gateway).create_user(
        'caja@pdv.test', 'secreto123', 'Caja', 'user', {}
    )

    [insert] = provider.find('POST', '/rest/v1/profiles')
    assert insert.headers['authorization'] == f'Bearer {admin_token}'
    assert json.loads(insert.content)['id'] == 'u-nuevo'
