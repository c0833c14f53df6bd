# ==============================================================================
# REPOSITORIO DE VENTAS
# ==============================================================================
# Encapsula las tablas sales y sale_items.
# Una venta = 1 fila en sales + N filas en sale_items (sale_id → sales.id).
# ==============================================================================

from typing import Any, Dict, List, Optional

from app_pdv.models import SaleStatus
from app_pdv.repositories.base import SupabaseRepository


class SalesRepository(SupabaseRepository):
    """Repositorio de la tabla sales."""

    table_name = 'sales'

    def list_sales(self) -> List[Dict[str, Any]]:
        """Todas las ventas, más recientes primero."""
        return self._fetch_all(
            lambda: self._table().select('*').order('date', desc=True),
            "No fue posible cargar las ventas"
        )

    def list_recent(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Últimas `limit` ventas."""
        query = self._table().select('*').order('date', desc=True).limit(limit)
        return self._execute(query, "No fue posible cargar las ventas recientes") or []

    def list_between(self, start_iso: str, end_iso: str) -> List[Dict[str, Any]]:
        """
        Ventas con fecha en [start, end).

        Args:
            start_iso: Inicio (ISO 8601, UTC)
            end_iso: Fin exclusivo (ISO 8601, UTC)
        """
        return self._fetch_all(
            lambda: (
                self._table()
                .select('*')
                .gte('date', start_iso)
                .lt('date', end_iso)
                .order('date')
            ),
            "No fue posible cargar las ventas del período"
        )

    def get_sale(self, sale_id: str) -> Optional[Dict[str, Any]]:
        return self.find_by_id(sale_id)

    def create_sale(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Inserta la fila principal de la venta y la retorna."""
        rows = self.insert(row, "No fue posible registrar la venta")
        return rows[0] if rows else row

    def update_sale(self, sale_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.update_by_id(sale_id, updates, "No fue posible actualizar la venta")

    def delete_sale(self, sale_id: str) -> None:
        self.delete_by_id(sale_id, "No fue posible eliminar la venta")


class SaleItemRepository(SupabaseRepository):
    """Repositorio de la tabla sale_items."""

    table_name = 'sale_items'

    # Columnas con el producto embebido (relación sale_items.product_id)
    WITH_PRODUCT = '*, products(name, code, category)'

    # Igual que WITH_PRODUCT + la venta (inner join: permite filtrar por su estado)
    WITH_SALE_STATUS = WITH_PRODUCT + ', sales!inner(status)'

    def create_items(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Inserta todas las líneas de una venta en una sola llamada."""
        return self.insert(rows, "No fue posible registrar los ítems de la venta")

    def get_items(self, sale_id: str) -> List[Dict[str, Any]]:
        """Líneas de una venta con nombre y código del producto."""
        query = self._table().select(self.WITH_PRODUCT).eq('sale_id', sale_id)
        return self._execute(query, "No fue posible cargar los ítems de la venta") or []

    def list_sold_items(self) -> List[Dict[str, Any]]:
        """Líneas de todas las ventas no anuladas (para reportes)."""
        return self._fetch_all(
            lambda: (
                self._table()
                .select(self.WITH_SALE_STATUS)
                .neq('sales.status', SaleStatus.CANCELLED.value)
                .order('id')
            ),
            "No fue posible cargar los ítems vendidos"
        )

    def delete_by_sale(self, sale_id: str) -> None:
        query = self._table().delete().eq('sale_id', sale_id)
        self._execute(query, "No fue posible eliminar los ítems de la venta")
