# ==============================================================================
# SERVICIO DE VENTAS
# ==============================================================================
# Centraliza el ciclo de vida de una venta:
#
#   1. Validar líneas y forma de pago
#   2. Verificar stock de CADA línea con el procedimiento remoto
#      → si alguna falla, se informa la lista completa y NO se escribe nada
#   3. Reservar stock con compare-and-set (stock = s - q donde stock = s)
#   4. Insertar la fila de la venta y luego todas las líneas en una llamada
#   5. Si algo falla después de reservar, compensar en orden inverso:
#      borrar líneas, borrar la venta y devolver el stock reservado
#
# El backend no ofrece transacciones entre llamadas; las compensaciones
# evitan ventas huérfanas (sin líneas) y stock descontado de más.
# ==============================================================================

import logging
import uuid
from typing import Any, Dict, List, Optional

from app_pdv.config import PAYMENT_METHODS
from app_pdv.errors import (
    BackendError,
    InsufficientStockError,
    NotFoundError,
    PdvError,
    ValidationError,
)
from app_pdv.models import CartItem, Sale, SaleStatus
from app_pdv.performance_logger import profile_function
from app_pdv.repositories.interfaces import (
    IProductRepository,
    ISaleItemRepository,
    ISalesRepository,
)

logger = logging.getLogger(__name__)

# Campos por los que se puede ordenar el listado de ventas
SORTABLE_FIELDS = frozenset(['date', 'total', 'customer', 'item_count', 'status'])


class SalesService:
    """
    Servicio para gestión de ventas.

    Responsabilidades:
    - Registrar ventas desde las líneas del carrito
    - Anular ventas (devolviendo el stock)
    - Listado, búsqueda y detalle
    """

    # Intentos de compare-and-set antes de rendirse por concurrencia
    MAX_STOCK_ATTEMPTS = 3

    def __init__(
        self,
        sales_repo: ISalesRepository,
        item_repo: ISaleItemRepository,
        product_repo: IProductRepository
    ):
        self.sales_repo = sales_repo
        self.item_repo = item_repo
        self.product_repo = product_repo

    # =========================================================================
    # CREACIÓN DE VENTAS
    # =========================================================================

    @profile_function(name="Registrar venta")
    def create_sale(
        self,
        cart_lines: List[Any],
        user_id: str,
        payment_method: str,
        customer: str = None,
        observations: str = None
    ) -> Dict[str, Any]:
        """
        Registra una venta. Esta es la ÚNICA función que crea ventas.

        Args:
            cart_lines: CartItem o dicts {product_id, name, quantity, price}
            user_id: Usuario que registra la venta (para el log)
            payment_method: Forma de pago (ver PAYMENT_METHODS)
            customer: Cliente (opcional)
            observations: Observaciones (opcional)

        Returns:
            Dict con resultado:
            - ok: True/False
            - error: mensaje si falló
            - failed: líneas sin stock (si aplica)
            - sale: fila de la venta creada
            - total / item_count
        """
        try:
            lines = self._normalize_lines(cart_lines)
            self._validate_payment_method(payment_method)
        except ValidationError as e:
            return {'ok': False, 'error': e.message}

        try:
            self._check_availability(lines)
        except InsufficientStockError as e:
            logger.info("Venta rechazada por stock: %s", e.failed)
            return {'ok': False, 'error': e.message, 'failed': e.failed}
        except PdvError as e:
            return {'ok': False, 'error': e.message}

        sale = Sale(
            id=str(uuid.uuid4()),
            total=round(sum(line.subtotal for line in lines), 2),
            item_count=sum(line.quantity for line in lines),
            status=SaleStatus.COMPLETED.value,
            payment_method=payment_method,
            customer=(customer or '').strip() or None,
            observations=(observations or '').strip() or None,
        )

        reserved: List[CartItem] = []
        sale_created = False
        try:
            for line in lines:
                self._reserve_stock(line)
                reserved.append(line)

            sale_row = self.sales_repo.create_sale(sale.to_row())
            sale_created = True
            self.item_repo.create_items([line.to_item_row(sale.id) for line in lines])
        except PdvError as e:
            logger.error("Falló el registro de la venta %s: %s", sale.id, e.message)
            self._compensate(sale.id if sale_created else None, reserved)
            result = {'ok': False, 'error': e.message}
            if isinstance(e, InsufficientStockError):
                result['failed'] = e.failed
            return result

        logger.info(
            "Venta %s registrada por %s: %d ítems, total %.2f",
            sale.id, user_id, sale.item_count, sale.total
        )
        return {
            'ok': True,
            'sale': sale_row,
            'total': sale.total,
            'item_count': sale.item_count,
        }

    def _normalize_lines(self, cart_lines: List[Any]) -> List[CartItem]:
        if not cart_lines:
            raise ValidationError('La venta debe contener al menos un ítem')

        lines = []
        for raw in cart_lines:
            try:
                line = raw if isinstance(raw, CartItem) else CartItem.from_dict(raw)
            except (TypeError, ValueError, KeyError):
                raise ValidationError('Valores inválidos en una línea de la venta')
            if line.quantity <= 0:
                raise ValidationError(f'Cantidad inválida para el producto {line.name or line.product_id}')
            if line.price < 0:
                raise ValidationError(f'Precio inválido para el producto {line.name or line.product_id}')
            lines.append(line)
        return lines

    def _validate_payment_method(self, payment_method: str) -> None:
        if not payment_method:
            raise ValidationError('Debe seleccionar la forma de pago')
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f'Forma de pago inválida: {payment_method}')

    def _check_availability(self, lines: List[CartItem]) -> None:
        """
        Verifica TODAS las líneas antes de escribir nada.

        Raises:
            InsufficientStockError: Con la lista completa de líneas sin stock
        """
        failed = []
        for line in lines:
            if not self.product_repo.check_stock_available(line.product_id, line.quantity):
                failed.append({
                    'product_id': line.product_id,
                    'name': line.name,
                    'quantity': line.quantity,
                })
        if failed:
            raise InsufficientStockError(failed)

    # =========================================================================
    # RESERVA Y DEVOLUCIÓN DE STOCK
    # =========================================================================

    def _reserve_stock(self, line: CartItem) -> None:
        """
        Descuenta el stock de una línea con compare-and-set.

        Raises:
            InsufficientStockError: El stock ya no alcanza
            BackendError: Demasiados conflictos concurrentes
        """
        for _ in range(self.MAX_STOCK_ATTEMPTS):
            product = self.product_repo.get_product(line.product_id)
            current = int((product or {}).get('stock') or 0)
            if product is None or current < line.quantity:
                raise InsufficientStockError([{
                    'product_id': line.product_id,
                    'name': line.name or (product or {}).get('name'),
                    'quantity': line.quantity,
                }])
            if self.product_repo.compare_and_set_stock(
                line.product_id, current, current - line.quantity
            ):
                return
        raise BackendError(
            f'El stock de {line.name or line.product_id} cambió durante la venta; intente de nuevo'
        )

    def _release_stock(self, product_id: int, quantity: int) -> bool:
        """Devuelve stock con compare-and-set. Retorna False si no pudo."""
        for _ in range(self.MAX_STOCK_ATTEMPTS):
            product = self.product_repo.get_product(product_id)
            if product is None:
                return False
            current = int(product.get('stock') or 0)
            if self.product_repo.compare_and_set_stock(product_id, current, current + quantity):
                return True
        return False

    def _compensate(self, sale_id: Optional[str], reserved: List[CartItem]) -> None:
        """
        Deshace una venta a medio registrar, en orden inverso.
        Los errores se registran y no interrumpen el resto de la compensación.
        """
        if sale_id:
            try:
                self.item_repo.delete_by_sale(sale_id)
            except PdvError as e:
                logger.error("No fue posible eliminar los ítems de la venta incompleta %s: %s",
                             sale_id, e.message)
            try:
                self.sales_repo.delete_sale(sale_id)
            except PdvError as e:
                logger.error("No fue posible eliminar la venta incompleta %s: %s", sale_id, e.message)

        for line in reversed(reserved):
            try:
                released = self._release_stock(line.product_id, line.quantity)
            except PdvError as e:
                logger.error("Error al devolver stock del producto %s: %s", line.product_id, e.message)
                continue
            if not released:
                logger.error(
                    "No fue posible devolver %d unidades al producto %s",
                    line.quantity, line.product_id
                )

    # =========================================================================
    # ANULACIÓN
    # =========================================================================

    def cancel_sale(self, sale_id: str, cancelled_by: str = None) -> Dict[str, Any]:
        """
        Anula una venta completada y devuelve su stock.

        Returns:
            Dict con ok / error
        """
        sale_row = self.sales_repo.get_sale(sale_id)
        if not sale_row:
            return {'ok': False, 'error': 'Venta no encontrada'}

        sale = Sale.from_dict(sale_row)
        if sale.is_cancelled:
            return {'ok': False, 'error': 'La venta ya está anulada'}

        self.sales_repo.update_sale(sale_id, {'status': SaleStatus.CANCELLED.value})

        not_released = []
        for item in self.item_repo.get_items(sale_id):
            quantity = int(item.get('quantity') or 0)
            if quantity and not self._release_stock(item['product_id'], quantity):
                not_released.append(item['product_id'])

        if not_released:
            logger.error("Venta %s anulada sin devolver stock de %s", sale_id, not_released)
        logger.info("Venta %s anulada por %s", sale_id, cancelled_by)
        return {'ok': True, 'sale_id': sale_id, 'not_released': not_released}

    # =========================================================================
    # CONSULTA DE VENTAS
    # =========================================================================

    def get_all_sales(self) -> List[Dict[str, Any]]:
        return self.sales_repo.list_sales()

    def get_sale(self, sale_id: str) -> Dict[str, Any]:
        """
        Venta con sus líneas (nombre y código del producto embebidos).

        Raises:
            NotFoundError: Si la venta no existe
        """
        sale = self.sales_repo.get_sale(sale_id)
        if not sale:
            raise NotFoundError('Venta no encontrada')
        items = []
        for item in self.item_repo.get_items(sale_id):
            product = item.get('products') or {}
            items.append({
                **item,
                'name': product.get('name', ''),
                'code': product.get('code', ''),
            })
        return {**sale, 'items': items}

    def search_sales(
        self,
        query: str = '',
        status: str = None,
        sort: str = None,
        direction: str = 'desc',
        sales: List[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Filtra y ordena el listado de ventas.

        Args:
            query: Texto contenido en el cliente o prefijo del id
            status: Filtrar por estado
            sort: Campo de orden (ver SORTABLE_FIELDS)
            direction: 'asc' o 'desc'
            sales: Ventas ya cargadas (None → se consultan)
        """
        if sales is None:
            sales = self.get_all_sales()

        q = (query or '').strip().lower()
        result = []
        for sale in sales:
            if status and sale.get('status') != status:
                continue
            if q:
                customer = (sale.get('customer') or '').lower()
                if q not in customer and not str(sale.get('id', '')).lower().startswith(q):
                    continue
            result.append(sale)

        if sort in SORTABLE_FIELDS:
            def sort_key(s):
                value = s.get(sort)
                if sort in ('total', 'item_count'):
                    return float(value or 0)
                return (value or '').lower() if isinstance(value, str) else str(value or '')
            result.sort(key=sort_key, reverse=(direction != 'asc'))
        return result

    # =========================================================================
    # ESTADÍSTICAS
    # =========================================================================

    def compute_stats(self, sales: List[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Resumen del listado (las anuladas no suman ingresos).

        Returns:
            Dict con total_sales, total_revenue, avg_ticket, cancelled
        """
        if sales is None:
            sales = self.get_all_sales()

        revenue = 0.0
        valid = 0
        cancelled = 0
        for sale in sales:
            if sale.get('status') == SaleStatus.CANCELLED.value:
                cancelled += 1
                continue
            valid += 1
            revenue += float(sale.get('total') or 0)

        return {
            'total_sales': valid,
            'total_revenue': round(revenue, 2),
            'avg_ticket': round(revenue / valid, 2) if valid else 0.0,
            'cancelled': cancelled,
        }
