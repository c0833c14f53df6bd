import pytest

from conftest import FakeClient, login, seed_products, seed_user
from app_pdv.models import CartItem
from app_pdv.repositories import ProductRepository, SaleItemRepository, SalesRepository
from app_pdv.services import SalesService


@pytest.fixture
def db(main_db):
    seed_products(main_db)
    return main_db


@pytest.fixture
def service(db):
    client = FakeClient(db, 'anon')
    return SalesService(SalesRepository(client), SaleItemRepository(client), ProductRepository(client))


def lines(*rows):
    return [CartItem(product_id=pid, name=name, quantity=qty, price=price)
            for pid, name, qty, price in rows]


def test_sale_inserts_one_sale_and_every_item(service, db):
    result = service.create_sale(
        lines((1, 'Café molido', 2, 10.0), (2, 'Azúcar', 3, 2.5)),
        user_id='u1', payment_method='EFECTIVO', customer='  Ana  ',
    )

    assert result['ok'] is True
    assert result['total'] == 27.5
    assert result['item_count'] == 5
    assert len(db.rows('sales')) == 1
    assert len(db.rows('sale_items')) == 2

    sale = db.rows('sales')[0]
    assert sale['status'] == 'completed'
    assert sale['customer'] == 'Ana'
    assert {i['sale_id'] for i in db.rows('sale_items')} == {sale['id']}


def test_sale_decrements_stock(service, db):
    service.create_sale(lines((1, 'Café molido', 4, 10.0)), 'u1', 'TARJETA_DEBITO')
    assert db.product(1)['stock'] == 16


def test_failing_stock_check_writes_nothing_and_lists_all_failures(service, db):
    result = service.create_sale(
        lines((1, 'Café molido', 1, 10.0), (2, 'Azúcar', 10, 2.5), (3, 'Jabón', 1, 4.0)),
        user_id='u1', payment_method='EFECTIVO',
    )

    assert result['ok'] is False
    assert [f['product_id'] for f in result['failed']] == [2, 3]
    assert 'Azúcar' in result['error'] and 'Jabón' in result['error']
    assert db.rows('sales') == []
    assert db.rows('sale_items') == []
    assert db.writes == []
    assert db.product(1)['stock'] == 20


def test_every_line_is_checked_remotely(service, db):
    service.create_sale(lines((1, 'Café molido', 1, 10.0), (2, 'Azúcar', 1, 2.5)), 'u1', 'EFECTIVO')
    checks = [params for name, params in db.rpc_calls if name == 'check_stock_availability']
    assert checks == [
        {'product_id_param': 1, 'quantity_param': 1},
        {'product_id_param': 2, 'quantity_param': 1},
    ]


def test_item_insert_failure_leaves_no_orphan_sale_and_restores_stock(service, db):
    db.fail('sale_items', 'insert')

    result = service.create_sale(
        lines((1, 'Café molido', 2, 10.0), (2, 'Azúcar', 1, 2.5)), 'u1', 'EFECTIVO'
    )

    assert result['ok'] is False
    assert db.rows('sales') == []
    assert db.rows('sale_items') == []
    assert db.product(1)['stock'] == 20
    assert db.product(2)['stock'] == 3


def test_sale_is_removed_even_if_its_items_cannot_be_deleted(service, db):
    db.fail('sale_items', 'insert')
    db.fail('sale_items', 'delete')

    result = service.create_sale(lines((1, 'Café molido', 2, 10.0)), 'u1', 'EFECTIVO')

    assert result['ok'] is False
    assert db.rows('sales') == []
    assert ('delete', 'sales', 1) in db.writes
    assert db.product(1)['stock'] == 20


def test_sale_insert_failure_releases_reserved_stock(service, db):
    db.fail('sales', 'insert')

    result = service.create_sale(lines((1, 'Café molido', 5, 10.0)), 'u1', 'EFECTIVO')

    assert result['ok'] is False
    assert 'No fue posible registrar la venta' in result['error']
    assert db.product(1)['stock'] == 20


def test_stock_consumed_between_check_and_reservation(service, db):
    # El procedimiento remoto aprueba, pero el stock real ya no alcanza
    db.stock_check_override[2] = True
    result = service.create_sale(
        lines((1, 'Café molido', 1, 10.0), (2, 'Azúcar', 50, 2.5)), 'u1', 'EFECTIVO'
    )

    assert result['ok'] is False
    assert result['failed'][0]['product_id'] == 2
    assert db.rows('sales') == []
    assert db.product(1)['stock'] == 20


def test_concurrent_stock_change_retries_compare_and_set(service, db):
    calls = {'n': 0}
    original = service.product_repo.compare_and_set_stock

    def flaky(pid, expected, new_stock):
        calls['n'] += 1
        if calls['n'] == 1:
            # Otra caja vendió una unidad justo antes
            db.product(pid)['stock'] -= 1
        return original(pid, expected, new_stock)

    service.product_repo.compare_and_set_stock = flaky
    result = service.create_sale(lines((1, 'Café molido', 2, 10.0)), 'u1', 'EFECTIVO')

    assert result['ok'] is True
    assert calls['n'] == 2
    assert db.product(1)['stock'] == 17


@pytest.mark.parametrize('cart, method, error', [
    ([], 'EFECTIVO', 'al menos un ítem'),
    ([CartItem(1, 'Café molido', 0, 10.0)], 'EFECTIVO', 'Cantidad inválida'),
    ([CartItem(1, 'Café molido', 1, 10.0)], '', 'forma de pago'),
    ([CartItem(1, 'Café molido', 1, 10.0)], 'BITCOIN', 'Forma de pago inválida'),
])
def test_invalid_sales_are_rejected_before_any_call(service, db, cart, method, error):
    result = service.create_sale(cart, 'u1', method)
    assert result['ok'] is False
    assert error in result['error']
    assert db.rpc_calls == []


def test_cancel_sale_restores_stock_once(service, db):
    created = service.create_sale(lines((1, 'Café molido', 3, 10.0)), 'u1', 'EFECTIVO')
    sale_id = created['sale']['id']

    assert service.cancel_sale(sale_id)['ok'] is True
    assert db.product(1)['stock'] == 20
    assert db.rows('sales')[0]['status'] == 'cancelled'

    again = service.cancel_sale(sale_id)
    assert again['ok'] is False
    assert db.product(1)['stock'] == 20


def test_get_sale_embeds_product_names(service, db):
    created = service.create_sale(lines((1, 'Café molido', 1, 10.0)), 'u1', 'EFECTIVO')
    sale = service.get_sale(created['sale']['id'])
    assert sale['items'][0]['name'] == 'Café molido'
    assert sale['items'][0]['code'] == 'P001'


def test_search_and_stats_skip_cancelled_revenue(service):
    sales = [
        {'id': 'a1', 'customer': 'Ana', 'total': 10, 'status': 'completed', 'date': '2026-01-01'},
        {'id': 'b2', 'customer': 'Beto', 'total': 30, 'status': 'cancelled', 'date': '2026-01-02'},
        {'id': 'c3', 'customer': 'Ana María', 'total': 20, 'status': 'completed', 'date': '2026-01-03'},
    ]
    found = service.search_sales('ana', sort='total', direction='asc', sales=sales)
    assert [s['id'] for s in found] == ['a1', 'c3']

    stats = service.compute_stats(sales)
    assert stats == {'total_sales': 2, 'total_revenue': 30.0, 'avg_ticket': 15.0, 'cancelled': 1}


# ═══════════════════════════════════════════════════════════════════════════
# FLUJO COMPLETO POR HTTP
# ═══════════════════════════════════════════════════════════════════════════

def test_checkout_from_cart(client, main_db):
    seed_products(main_db)
    seed_user(main_db)
    token = login(client)

    r = client.post('/pos/cart/add', data={'product_id': 1, 'quantity': 2, 'csrf_token': token})
    assert r.status_code == 302
    r = client.post('/pos/checkout', data={'payment_method': 'EFECTIVO', 'csrf_token': token},
                    follow_redirects=True)

    assert r.status_code == 200
    assert 'Venta registrada' in r.get_data(as_text=True)
    assert len(main_db.rows('sales')) == 1
    assert main_db.product(1)['stock'] == 18
    with client.session_transaction() as sess:
        assert 'cart' not in sess


def test_checkout_without_stock_keeps_cart(client, main_db):
    seed_products(main_db)
    seed_user(main_db)
    token = login(client)

    client.post('/pos/cart/add', data={'product_id': 2, 'quantity': 9, 'csrf_token': token})
    r = client.post('/pos/checkout', data={'payment_method': 'EFECTIVO', 'csrf_token': token},
                    follow_redirects=True)

    assert 'Stock insuficiente para: Azúcar' in r.get_data(as_text=True)
    assert main_db.rows('sales') == []
    with client.session_transaction() as sess:
        assert sess['cart'][0]['quantity'] == 9


def test_export_csv(client, main_db):
    seed_user(main_db)
    main_db.seed('sales', [{'id': 'venta-1', 'date': '2026-01-01T10:00:00+00:00', 'total': 12.5,
                            'item_count': 2, 'status': 'completed', 'payment_method': 'EFECTIVO'}])
    login(client)

    r = client.get('/sales/export')
    assert r.status_code == 200
    assert r.mimetype == 'text/csv'
    assert 'venta-1' in r.get_data(as_text=True)
