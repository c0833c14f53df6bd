"""
Fixtures compartidas: un backend Supabase falso en memoria.

FakeBackend reproduce la parte del SDK que usa la aplicación:
  - client.table(t).select/insert/update/delete
    + eq/neq/in_/gte/lt/lte/order/limit/range
  - embebidos products(...) y sales!inner(status) en sale_items
  - client.rpc('search_products' | 'check_stock_availability', params)
  - client.auth: sign_in_with_password / sign_up / sign_out /
    refresh_session / admin.sign_out / admin.delete_user
  - client.postgrest.auth(token)

Como el SDK real, el cliente recuerda la sesión abierta con sign_in o
sign_up y pasa a consultar con el token de ese usuario. Los tokens de
acceso son JWT con vencimiento.

Cada URL de proyecto tiene su propia base (tenants independientes).
"""
import re
import time
import uuid

import jwt
import pytest
from postgrest.exceptions import APIError
from supabase import AuthApiError

from app_pdv.main import create_app

MAIN_URL = 'https://main.supabase.co'
TENANT_URL = 'https://tenant-a.supabase.co'

# Tablas cuyo id lo genera el backend como texto
TEXT_ID_TABLES = frozenset(['tenants', 'tenant_users'])


def make_token(user_id, expires_in=3600):
    """Token de acceso como los del proveedor (HS256, con exp)."""
    return jwt.encode({'sub': user_id, 'exp': int(time.time()) + expires_in,
                       'role': 'authenticated'}, 'fake-jwt-secret', algorithm='HS256')


def token_subject(token):
    return jwt.decode(token, options={'verify_signature': False})['sub']


class FakeAuthApiError(AuthApiError):
    def __init__(self, message):
        Exception.__init__(self, message)
        self.message = message
        self.status = 400
        self.code = None
        self.name = 'AuthApiError'


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeDatabase:
    """Tablas de un proyecto + contadores para las aserciones."""

    def __init__(self, url):
        self.url = url
        self.tables = {}
        self.next_ids = {}
        self.rpc_calls = []
        self.writes = []
        self.requests = []
        self.pages = []
        self.fail_on = {}
        self.stock_check_override = {}
        self.auth_users = {}
        self.refresh_tokens = {}
        self.refreshes = 0
        self.sign_outs = 0
        self.confirm_email = False

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def seed(self, table, rows):
        for row in rows:
            self.insert_row(table, dict(row))

    def insert_row(self, table, row):
        if 'id' not in row:
            if table in TEXT_ID_TABLES:
                row['id'] = str(uuid.uuid4())
            else:
                next_id = self.next_ids.get(table, 1)
                existing = [r['id'] for r in self.rows(table) if isinstance(r.get('id'), int)]
                next_id = max([next_id] + [i + 1 for i in existing])
                row['id'] = next_id
                self.next_ids[table] = next_id + 1
        self.rows(table).append(row)
        return row

    def fail(self, table, op, message='fallo simulado'):
        self.fail_on[(table, op)] = message

    def check_failure(self, table, op):
        message = self.fail_on.get((table, op))
        if message:
            raise APIError({'message': message, 'code': 'XX000', 'hint': None, 'details': None})

    def product(self, pid):
        for row in self.rows('products'):
            if row['id'] == pid:
                return row
        return None

    def sale(self, sale_id):
        for row in self.rows('sales'):
            if row['id'] == sale_id:
                return row
        return None

    def add_auth_user(self, email, password, name='', user_id=None):
        user_id = user_id or str(uuid.uuid4())
        self.auth_users[email] = {'id': user_id, 'email': email, 'password': password,
                                  'metadata': {'name': name}}
        return user_id

    def issue_session(self, user_id):
        """Tokens nuevos para el usuario (el refresh queda registrado)."""
        refresh = f'refresh-{uuid.uuid4().hex}'
        self.refresh_tokens[refresh] = user_id
        return _Obj(access_token=make_token(user_id), refresh_token=refresh)

    def revoke(self, user_id):
        self.refresh_tokens = {r: u for r, u in self.refresh_tokens.items() if u != user_id}

    def requests_for(self, table):
        return [r for r in self.requests if r[1] == table]


def _value(row, column):
    """Valor de una columna; 'sales.status' lee el embebido."""
    if '.' in column:
        parent, child = column.split('.', 1)
        return (row.get(parent) or {}).get(child)
    return row.get(column)


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.db = client.db
        self.table = table
        self.op = 'select'
        self.columns = '*'
        self.payload = None
        self.filters = []
        self.order_by = None
        self.max_rows = None
        self.row_range = None

    def select(self, columns='*'):
        self.op = 'select'
        self.columns = columns
        return self

    def insert(self, rows):
        self.op = 'insert'
        self.payload = rows
        return self

    def update(self, values):
        self.op = 'update'
        self.payload = values
        return self

    def delete(self):
        self.op = 'delete'
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: _value(row, column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: _value(row, column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: _value(row, column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) <= value)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def range(self, start, end):
        self.row_range = (start, end)
        self.db.pages.append((self.table, start, end))
        return self

    def _with_embeds(self, row):
        row = dict(row)
        if 'products(' in self.columns:
            product = self.db.product(row.get('product_id')) or {}
            row['products'] = {k: product.get(k) for k in ('name', 'code', 'category')}
        if 'sales!inner(' in self.columns:
            sale = self.db.sale(row.get('sale_id'))
            if sale is None:
                return None
            row['sales'] = {'status': sale.get('status')}
        return row

    def _matching(self):
        return [row for row in self.db.rows(self.table) if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.requests.append((self.op, self.table, self.client.postgrest.token))
        self.db.check_failure(self.table, self.op)

        if self.op == 'insert':
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [dict(self.db.insert_row(self.table, dict(r))) for r in rows]
            self.db.writes.append(('insert', self.table, len(inserted)))
            return FakeResponse(inserted)

        if self.op == 'update':
            updated = []
            for row in self._matching():
                row.update(self.payload)
                updated.append(dict(row))
            self.db.writes.append(('update', self.table, dict(self.payload)))
            return FakeResponse(updated)

        if self.op == 'delete':
            doomed = self._matching()
            self.db.tables[self.table] = [r for r in self.db.rows(self.table) if r not in doomed]
            self.db.writes.append(('delete', self.table, len(doomed)))
            return FakeResponse([dict(r) for r in doomed])

        embedded = [self._with_embeds(r) for r in self.db.rows(self.table)]
        rows = [r for r in embedded if r is not None and all(f(r) for f in self.filters)]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.row_range is not None:
            start, end = self.row_range
            rows = rows[start:end + 1]
        if self.max_rows is not None:
            rows = rows[:self.max_rows]
        return FakeResponse(rows)


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.rpc_calls.append((self.name, dict(self.params)))
        self.db.check_failure('rpc', self.name)

        if self.name == 'search_products':
            term = self.params['search_term'].strip().lower()
            return FakeResponse([
                dict(p) for p in self.db.rows('products')
                if any(term in str(p.get(k) or '').lower() for k in ('name', 'code', 'barcode'))
            ])

        if self.name == 'check_stock_availability':
            pid = self.params['product_id_param']
            if pid in self.db.stock_check_override:
                return FakeResponse(self.db.stock_check_override[pid])
            product = self.db.product(pid)
            return FakeResponse(bool(product) and product['stock'] >= self.params['quantity_param'])

        raise AssertionError(f'rpc desconocido: {self.name}')


class _Obj:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class FakeAdminAuth:
    def __init__(self, db):
        self.db = db
        self.deleted = []

    def delete_user(self, user_id):
        self.deleted.append(user_id)
        self.db.auth_users = {e: u for e, u in self.db.auth_users.items() if u['id'] != user_id}

    def sign_out(self, access_token, scope='global'):
        """Revoca las sesiones del dueño del token."""
        self.db.sign_outs += 1
        self.db.revoke(token_subject(access_token))


class FakeAuth:
    def __init__(self, client):
        self.client = client
        self.db = client.db
        self.admin = FakeAdminAuth(client.db)
        self.session = None

    def _open_session(self, user_id):
        # SIGNED_IN / TOKEN_REFRESHED: el cliente consulta con el token nuevo
        self.session = self.db.issue_session(user_id)
        self.client.postgrest.token = self.session.access_token
        return self.session

    def _response(self, user, session):
        return _Obj(
            user=_Obj(id=user['id'], email=user['email'], user_metadata=user['metadata']),
            session=session,
        )

    def sign_in_with_password(self, credentials):
        user = self.db.auth_users.get(credentials['email'])
        if not user or user['password'] != credentials['password']:
            raise FakeAuthApiError('Invalid login credentials')
        return self._response(user, self._open_session(user['id']))

    def sign_up(self, credentials):
        if credentials['email'] in self.db.auth_users:
            raise FakeAuthApiError('User already registered')
        name = credentials.get('options', {}).get('data', {}).get('name', '')
        self.db.add_auth_user(credentials['email'], credentials['password'], name)
        user = self.db.auth_users[credentials['email']]
        session = None if self.db.confirm_email else self._open_session(user['id'])
        return self._response(user, session)

    def refresh_session(self, refresh_token=None):
        user_id = self.db.refresh_tokens.pop(refresh_token, None)
        if user_id is None:
            raise FakeAuthApiError('Invalid Refresh Token: Refresh Token Not Found')
        self.db.refreshes += 1
        user = next(u for u in self.db.auth_users.values() if u['id'] == user_id)
        return self._response(user, self._open_session(user_id))

    def sign_out(self):
        # Sin sesión abierta en este cliente el SDK no llama al proveedor
        if self.session is None:
            return
        self.admin.sign_out(self.session.access_token)
        self.session = None


class FakePostgrest:
    def __init__(self):
        self.token = None

    def auth(self, token):
        self.token = token


class FakeClient:
    def __init__(self, db, key):
        self.db = db
        self.key = key
        self.postgrest = FakePostgrest()
        self.auth = FakeAuth(self)

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self.db, name, params)


class FakeBackend:
    """Fábrica (url, key) → FakeClient, con una base por proyecto."""

    def __init__(self):
        self.projects = {}
        self.clients = []

    def project(self, url):
        if url not in self.projects:
            self.projects[url] = FakeDatabase(url)
        return self.projects[url]

    def client(self, url, key):
        client = FakeClient(self.project(url), key)
        self.clients.append((url, key, client))
        return client


# ═══════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def main_db(backend):
    return backend.project(MAIN_URL)


@pytest.fixture
def tenant_db(backend):
    return backend.project(TENANT_URL)


@pytest.fixture
def fake_client(main_db):
    return FakeClient(main_db, 'anon')


@pytest.fixture
def app(backend):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SUPABASE_URL': MAIN_URL,
        'SUPABASE_ANON_KEY': 'anon-key',
        'SUPABASE_SERVICE_KEY': 'service-key',
        'BACKEND_CLIENT_FACTORY': backend.client,
        'ENABLE_PROFILING': False,
        'REALTIME_ENABLED': False,
    })
    return app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


def seed_products(db):
    db.seed('products', [
        {'id': 1, 'code': 'P001', 'name': 'Café molido', 'barcode': '7790001',
         'price': 10.0, 'stock': 20, 'category': 'Almacén'},
        {'id': 2, 'code': 'P002', 'name': 'Azúcar', 'barcode': '7790002',
         'price': 2.5, 'stock': 3, 'category': 'Almacén'},
        {'id': 3, 'code': 'P003', 'name': 'Jabón', 'barcode': '7790003',
         'price': 4.0, 'stock': 0, 'category': 'Limpieza'},
    ])


def seed_user(db, email='admin@pdv.test', password='secreto123', role='admin',
              active=True, permissions=None, is_system_admin=False, name='Admin'):
    """Crea la cuenta en el proveedor y su perfil."""
    user_id = db.add_auth_user(email, password, name)
    db.seed('profiles', [{
        'id': user_id, 'email': email, 'name': name, 'role': role, 'active': active,
        'permissions': permissions or {}, 'is_system_admin': is_system_admin,
    }])
    return user_id


def csrf_from(html):
    m = re.search(r'name="csrf_token" value="([0-9a-f]+)"', html)
    return m.group(1) if m else None


def login(client, email='admin@pdv.test', password='secreto123'):
    """Inicia sesión por el formulario y retorna el token CSRF."""
    getr = client.get('/login')
    assert getr.status_code == 200
    token = csrf_from(getr.get_data(as_text=True))
    assert token, 'no csrf token in login page'
    r = client.post('/login', data={'email': email, 'password': password, 'csrf_token': token},
                    follow_redirects=True)
    assert r.status_code == 200
    assert 'Bienvenido' in r.get_data(as_text=True)
    with client.session_transaction() as sess:
        return sess['csrf_token']
