# ==============================================================================
# REPOSITORIO DE PRODUCTOS
# ==============================================================================
# Encapsula la tabla products y los procedimientos remotos:
#   - search_products(search_term)
#   - check_stock_availability(product_id_param, quantity_param)
# ==============================================================================

from typing import Any, Dict, List, Optional

from app_pdv.repositories.base import SupabaseRepository


class ProductRepository(SupabaseRepository):
    """Repositorio del catálogo de productos."""

    table_name = 'products'

    def list_products(self) -> List[Dict[str, Any]]:
        """Todos los productos ordenados por nombre."""
        return self._fetch_all(
            lambda: self._table().select('*').order('name'),
            "No fue posible cargar los productos"
        )

    def get_product(self, pid: int) -> Optional[Dict[str, Any]]:
        return self.find_by_id(pid)

    def create_product(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.insert(data, "No fue posible crear el producto")
        return rows[0] if rows else None

    def update_product(self, pid: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.update_by_id(pid, data, "No fue posible actualizar el producto")

    def delete_product(self, pid: int) -> None:
        self.delete_by_id(pid, "No fue posible eliminar el producto")

    def search(self, term: str) -> List[Dict[str, Any]]:
        """
        Búsqueda remota. El término se envía tal cual.

        Args:
            term: Texto libre (nombre, código o código de barras)

        Returns:
            Filas devueltas por el procedimiento
        """
        rows = self._rpc(
            'search_products',
            {'search_term': term},
            "No fue posible realizar la búsqueda"
        )
        return rows or []

    def check_stock_available(self, pid: int, quantity: int) -> bool:
        """Consulta remota de disponibilidad. No reserva ni descuenta."""
        result = self._rpc(
            'check_stock_availability',
            {'product_id_param': pid, 'quantity_param': quantity},
            "No fue posible verificar el stock"
        )
        return bool(result)

    def compare_and_set_stock(self, pid: int, expected: int, new_stock: int) -> bool:
        """
        Actualiza el stock solo si sigue valiendo `expected`.

        Returns:
            True si la fila se actualizó, False si otro proceso la cambió antes
        """
        query = (
            self._table()
            .update({'stock': new_stock})
            .eq('id', pid)
            .eq('stock', expected)
        )
        rows = self._execute(query, "No fue posible actualizar el stock")
        return bool(rows)

    def list_low_stock(self, threshold: int) -> List[Dict[str, Any]]:
        """Productos con stock menor o igual al umbral."""
        return self._fetch_all(
            lambda: self._table().select('*').lte('stock', threshold).order('stock'),
            "No fue posible cargar los productos con stock bajo"
        )
