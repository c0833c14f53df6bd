import csv
import io
from datetime import datetime, timezone

import pytest

from conftest import FakeClient, login, seed_products, seed_user
from app_pdv.errors import ValidationError
from app_pdv.repositories import ProductRepository, SaleItemRepository, SalesRepository
from app_pdv.services import ReportService
from app_pdv.services.report_service import parse_date

# Lunes 19 de octubre de 2026, 14:30 UTC
NOW = datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def db(main_db):
    seed_products(main_db)
    main_db.seed('sales', [
        {'id': 's1', 'date': '2026-10-19T10:15:00+00:00', 'total': 20.0, 'item_count': 2, 'status': 'completed'},
        {'id': 's2', 'date': '2026-10-19T13:00:00+00:00', 'total': 5.0, 'item_count': 2, 'status': 'completed'},
        {'id': 's3', 'date': '2026-10-19T13:30:00+00:00', 'total': 99.0, 'item_count': 1, 'status': 'cancelled'},
        {'id': 's4', 'date': '2026-10-14T09:00:00+00:00', 'total': 8.0, 'item_count': 2, 'status': 'completed'},
        {'id': 's5', 'date': '2026-02-01T09:00:00+00:00', 'total': 4.0, 'item_count': 1, 'status': 'completed'},
    ])
    main_db.seed('sale_items', [
        {'sale_id': 's1', 'product_id': 1, 'quantity': 2, 'price': 10.0, 'subtotal': 20.0},
        {'sale_id': 's2', 'product_id': 2, 'quantity': 2, 'price': 2.5, 'subtotal': 5.0},
        {'sale_id': 's3', 'product_id': 1, 'quantity': 9, 'price': 11.0, 'subtotal': 99.0},
        {'sale_id': 's4', 'product_id': 3, 'quantity': 2, 'price': 4.0, 'subtotal': 8.0},
        {'sale_id': 's5', 'product_id': 3, 'quantity': 1, 'price': 4.0, 'subtotal': 4.0},
    ])
    return main_db


@pytest.fixture
def service(db):
    client = FakeClient(db, 'anon')
    return ReportService(SalesRepository(client), SaleItemRepository(client),
                         ProductRepository(client), low_stock_threshold=3)


def test_dashboard_summary_excludes_cancelled(service):
    summary = service.dashboard_summary(now=NOW)
    assert summary['today_sales'] == 2
    assert summary['today_revenue'] == 25.0
    assert summary['avg_ticket'] == 12.5
    assert summary['product_count'] == 3
    assert [p['id'] for p in summary['low_stock']] == [3, 2]
    assert summary['recent_sales'][0]['id'] == 's3'


def test_day_uses_three_hour_buckets(service):
    day = service.sales_by_period('day', now=NOW)
    assert day['labels'] == ['00:00', '03:00', '06:00', '09:00', '12:00', '15:00', '18:00', '21:00']
    assert day['revenue'][3] == 20.0
    assert day['revenue'][4] == 5.0
    assert day['total_sales'] == 2


def test_week_covers_last_seven_days(service):
    week = service.sales_by_period('week', now=NOW)
    assert week['labels'] == ['Mar', 'Mié', 'Jue', 'Vie', 'Sáb', 'Dom', 'Lun']
    assert week['revenue'][1] == 8.0
    assert week['revenue'][6] == 25.0


def test_month_groups_by_week(service):
    month = service.sales_by_period('month', now=NOW)
    assert month['labels'] == ['Semana 1', 'Semana 2', 'Semana 3', 'Semana 4', 'Semana 5']
    assert month['revenue'] == [0.0, 8.0, 25.0, 0.0, 0.0]


def test_year_groups_by_month(service):
    year = service.sales_by_period('year', now=NOW)
    assert year['labels'][1] == 'Feb'
    assert year['revenue'][1] == 4.0
    assert year['revenue'][9] == 33.0
    assert year['total_revenue'] == 37.0


def test_unknown_period(service):
    with pytest.raises(ValidationError):
        service.sales_by_period('decade', now=NOW)


def test_top_products_and_categories_ignore_cancelled(service):
    top = service.top_products(limit=2)
    assert [(p['product_id'], p['quantity']) for p in top] == [(3, 3), (1, 2)]
    assert top[0]['name'] == 'Jabón'

    categories = service.category_breakdown()
    assert categories == [
        {'category': 'Almacén', 'quantity': 4, 'revenue': 25.0},
        {'category': 'Limpieza', 'quantity': 3, 'revenue': 12.0},
    ]


def test_sold_items_come_from_one_filtered_query(service, db):
    db.requests.clear()

    service.top_products()

    # el estado de la venta se filtra en el backend; no se listan ids
    assert [r[:2] for r in db.requests] == [('select', 'sale_items')]


def test_listings_are_read_page_by_page(db):
    client = FakeClient(db, 'anon')
    sales = SalesRepository(client)
    sales.page_size = 2
    items = SaleItemRepository(client)
    items.page_size = 2

    assert len(sales.list_sales()) == 5
    assert [p[1:] for p in db.pages if p[0] == 'sales'] == [(0, 1), (2, 3), (4, 5)]

    sold = items.list_sold_items()
    assert sorted(i['sale_id'] for i in sold) == ['s1', 's2', 's4', 's5']
    assert [p[1:] for p in db.pages if p[0] == 'sale_items'] == [(0, 1), (2, 3), (4, 5)]


def test_export_csv(service):
    rows = list(csv.reader(io.StringIO(service.export_sales_csv())))
    assert rows[0] == ['id', 'date', 'customer', 'payment_method', 'item_count', 'total', 'status']
    assert len(rows) == 6
    assert ['s3', '2026-10-19T13:30:00+00:00', '', '', '1', '99.00', 'cancelled'] in rows


@pytest.mark.parametrize('raw, expected', [
    ('2026-10-19T10:15:00Z', datetime(2026, 10, 19, 10, 15, tzinfo=timezone.utc)),
    ('2026-10-19T10:15:00', datetime(2026, 10, 19, 10, 15, tzinfo=timezone.utc)),
    ('2026-10-19T10:15:00.1234+00:00', datetime(2026, 10, 19, 10, 15, 0, 123400, tzinfo=timezone.utc)),
    ('2026-10-19T10:15:00.5Z', datetime(2026, 10, 19, 10, 15, 0, 500000, tzinfo=timezone.utc)),
    ('2026-10-19T10:15:00.1234567+00:00', datetime(2026, 10, 19, 10, 15, 0, 123456, tzinfo=timezone.utc)),
    ('ayer', None),
    (None, None),
])
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


def test_reports_api(client, main_db):
    seed_user(main_db)
    login(client)

    r = client.get('/api/reports/week')
    assert r.status_code == 200
    assert len(r.get_json()['data']['labels']) == 7

    r = client.get('/api/reports/decade')
    assert r.status_code == 400
    assert r.get_json()['ok'] is False


def test_reports_page(client, main_db):
    seed_products(main_db)
    seed_user(main_db)
    login(client)
    r = client.get('/reports?period=month')
    assert r.status_code == 200
    assert 'Semana 1' in r.get_data(as_text=True)
