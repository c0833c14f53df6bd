# ==============================================================================
# SERVICIO DE REPORTES
# ==============================================================================
# Todas las cifras se calculan a partir de las filas remotas en cada
# llamada (sin caché ni estado local).
#
# REGLA: las ventas anuladas NO suman ingresos ni cantidad de ventas.
#
# Períodos de sales_by_period():
#   day   → hoy, en tramos de 3 horas (00:00, 03:00, ... 21:00)
#   week  → últimos 7 días (incluido hoy)
#   month → semanas del mes actual (Semana 1..5)
#   year  → meses del año actual (Ene..Dic)
# Las fechas se comparan en UTC.
# ==============================================================================

import csv
import io
import logging
import re
from calendar import monthrange
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from app_pdv.errors import ValidationError
from app_pdv.models import SaleStatus
from app_pdv.repositories.interfaces import (
    IProductRepository,
    ISaleItemRepository,
    ISalesRepository,
)

logger = logging.getLogger(__name__)

PERIODS = ('day', 'week', 'month', 'year')

WEEKDAY_LABELS = ('Lun', 'Mar', 'Mié', 'Jue', 'Vie', 'Sáb', 'Dom')
MONTH_LABELS = ('Ene', 'Feb', 'Mar', 'Abr', 'May', 'Jun',
                'Jul', 'Ago', 'Sep', 'Oct', 'Nov', 'Dic')

CSV_COLUMNS = ('id', 'date', 'customer', 'payment_method', 'item_count', 'total', 'status')

# Fracción de segundo de largo variable (Postgres omite los ceros finales)
_FRACTION = re.compile(r'\.(\d+)')


def parse_date(date_str: Any) -> Optional[datetime]:
    """
    Parsea una fecha ISO del backend (siempre retorna datetime con zona).
    Retorna None si no puede parsear.
    """
    if not date_str or not isinstance(date_str, str):
        return None
    try:
        normalized = _FRACTION.sub(
            lambda m: '.' + m.group(1)[:6].ljust(6, '0'), date_str.replace('Z', '+00:00'), count=1
        )
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_valid_sale(sale: Dict[str, Any]) -> bool:
    return sale.get('status') != SaleStatus.CANCELLED.value


def _total(sale: Dict[str, Any]) -> float:
    try:
        return float(sale.get('total') or 0)
    except (TypeError, ValueError):
        return 0.0


class ReportService:
    """
    Servicio de reportes y del panel principal.
    """

    def __init__(
        self,
        sales_repo: ISalesRepository,
        item_repo: ISaleItemRepository,
        product_repo: IProductRepository,
        low_stock_threshold: int = 5
    ):
        self.sales_repo = sales_repo
        self.item_repo = item_repo
        self.product_repo = product_repo
        self.low_stock_threshold = low_stock_threshold

    # =========================================================================
    # PANEL PRINCIPAL
    # =========================================================================

    def dashboard_summary(self, now: datetime = None) -> Dict[str, Any]:
        """
        Resumen del panel.

        Returns:
            Dict con today_revenue, today_sales, avg_ticket, product_count,
            low_stock (lista), recent_sales (últimas 5)
        """
        now = now or datetime.now(timezone.utc)
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)

        today = [s for s in self.sales_repo.list_between(start.isoformat(), end.isoformat())
                 if _is_valid_sale(s)]
        revenue = round(sum(_total(s) for s in today), 2)

        products = self.product_repo.list_products()
        low_stock = self.product_repo.list_low_stock(self.low_stock_threshold)

        return {
            'today_revenue': revenue,
            'today_sales': len(today),
            'avg_ticket': round(revenue / len(today), 2) if today else 0.0,
            'product_count': len(products),
            'stock_units': sum(int(p.get('stock') or 0) for p in products),
            'low_stock': low_stock,
            'recent_sales': self.sales_repo.list_recent(5),
        }

    # =========================================================================
    # VENTAS POR PERÍODO
    # =========================================================================

    def _period_range(self, period: str, now: datetime) -> Tuple[datetime, datetime, List[str]]:
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

        if period == 'day':
            labels = [f'{hour:02d}:00' for hour in range(0, 24, 3)]
            return midnight, midnight + timedelta(days=1), labels

        if period == 'week':
            start = midnight - timedelta(days=6)
            labels = [WEEKDAY_LABELS[(start + timedelta(days=i)).weekday()] for i in range(7)]
            return start, midnight + timedelta(days=1), labels

        if period == 'month':
            start = midnight.replace(day=1)
            days = monthrange(start.year, start.month)[1]
            weeks = (days - 1) // 7 + 1
            labels = [f'Semana {i + 1}' for i in range(weeks)]
            return start, start + timedelta(days=days), labels

        start = midnight.replace(month=1, day=1)
        return start, start.replace(year=start.year + 1), list(MONTH_LABELS)

    def _bucket(self, period: str, sale_date: datetime, start: datetime) -> int:
        if period == 'day':
            return sale_date.hour // 3
        if period == 'week':
            return (sale_date - start).days
        if period == 'month':
            return (sale_date.day - 1) // 7
        return sale_date.month - 1

    def sales_by_period(self, period: str, now: datetime = None) -> Dict[str, Any]:
        """
        Ingresos y cantidad de ventas agrupados por tramo.

        Args:
            period: 'day', 'week', 'month' o 'year'
            now: Instante de referencia (UTC)

        Returns:
            Dict con period, labels, revenue, count, total_revenue, total_sales

        Raises:
            ValidationError: Período desconocido
        """
        if period not in PERIODS:
            raise ValidationError(f'Período inválido: {period}')

        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        start, end, labels = self._period_range(period, now)
        revenue = [0.0] * len(labels)
        count = [0] * len(labels)

        for sale in self.sales_repo.list_between(start.isoformat(), end.isoformat()):
            if not _is_valid_sale(sale):
                continue
            sale_date = parse_date(sale.get('date') or sale.get('created_at'))
            if sale_date is None:
                continue
            sale_date = sale_date.astimezone(timezone.utc)
            if not start <= sale_date < end:
                continue
            idx = self._bucket(period, sale_date, start)
            revenue[idx] += _total(sale)
            count[idx] += 1

        revenue = [round(value, 2) for value in revenue]
        return {
            'period': period,
            'labels': labels,
            'revenue': revenue,
            'count': count,
            'total_revenue': round(sum(revenue), 2),
            'total_sales': sum(count),
        }

    # =========================================================================
    # PRODUCTOS Y CATEGORÍAS
    # =========================================================================

    def _sold_items(self) -> List[Dict[str, Any]]:
        """Líneas de todas las ventas no anuladas (el backend filtra por estado)."""
        return self.item_repo.list_sold_items()

    def top_products(self, limit: int = 5, items: List[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Productos más vendidos por cantidad."""
        if items is None:
            items = self._sold_items()

        totals: Dict[Any, Dict[str, Any]] = {}
        for item in items:
            pid = item.get('product_id')
            product = item.get('products') or {}
            entry = totals.setdefault(pid, {
                'product_id': pid,
                'name': product.get('name') or f'Producto {pid}',
                'code': product.get('code', ''),
                'quantity': 0,
                'revenue': 0.0,
            })
            entry['quantity'] += int(item.get('quantity') or 0)
            entry['revenue'] += float(item.get('subtotal') or 0)

        ranking = sorted(totals.values(), key=lambda e: (-e['quantity'], -e['revenue']))
        for entry in ranking:
            entry['revenue'] = round(entry['revenue'], 2)
        return ranking[:limit]

    def category_breakdown(self, items: List[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Ingresos y unidades vendidas por categoría (mayor ingreso primero)."""
        if items is None:
            items = self._sold_items()

        totals: Dict[str, Dict[str, Any]] = {}
        for item in items:
            category = (item.get('products') or {}).get('category') or 'Sin categoría'
            entry = totals.setdefault(category, {'category': category, 'quantity': 0, 'revenue': 0.0})
            entry['quantity'] += int(item.get('quantity') or 0)
            entry['revenue'] += float(item.get('subtotal') or 0)

        result = sorted(totals.values(), key=lambda e: -e['revenue'])
        for entry in result:
            entry['revenue'] = round(entry['revenue'], 2)
        return result

    def reports_overview(self, period: str = 'week', now: datetime = None) -> Dict[str, Any]:
        """Datos completos de la página de reportes."""
        items = self._sold_items()
        return {
            'period': self.sales_by_period(period, now),
            'top_products': self.top_products(items=items),
            'categories': self.category_breakdown(items=items),
        }

    # =========================================================================
    # EXPORTACIÓN
    # =========================================================================

    def export_sales_csv(self, sales: List[Dict[str, Any]] = None) -> str:
        """
        Exporta las ventas a CSV (incluye anuladas, con su estado).

        Returns:
            Contenido CSV como string
        """
        if sales is None:
            sales = self.sales_repo.list_sales()

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_COLUMNS)
        for sale in sales:
            writer.writerow([
                sale.get('id', ''),
                sale.get('date', ''),
                sale.get('customer') or '',
                sale.get('payment_method') or '',
                sale.get('item_count') or 0,
                f"{_total(sale):.2f}",
                sale.get('status', ''),
            ])
        logger.info("Exportadas %d ventas a CSV", len(sales))
        return output.getvalue()
