# ==============================================================================
# REPOSITORIO BASE - Acceso común a tablas del backend alojado
# ==============================================================================
# Todas las tablas se leen y escriben con el query builder del SDK de
# Supabase (postgrest). Esta clase centraliza:
#   - La ejecución de consultas y procedimientos remotos (rpc)
#   - La traducción de errores del SDK a BackendError
#   - El registro del error en el log antes de propagarlo
#
# Ningún repositorio guarda estado: cada llamada va al backend.
#
# Los listados se leen por páginas (.range): el backend corta cada
# respuesta en un máximo de filas (1000 por defecto en PostgREST).
# ==============================================================================

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError

from app_pdv.errors import BackendError

logger = logging.getLogger(__name__)


class SupabaseRepository:
    """
    Clase base para repositorios respaldados por una tabla remota.

    Las subclases definen `table_name` y exponen métodos de dominio.
    """

    table_name: str = ''

    # Filas por página en los listados (no superar el máximo del backend)
    page_size: int = 1000

    def __init__(self, client):
        """
        Inicializa el repositorio.

        Args:
            client: Cliente del SDK (principal o del tenant activo)
        """
        self.client = client

    def _table(self, name: str = None):
        """Query builder de la tabla (la propia por defecto)."""
        return self.client.table(name or self.table_name)

    def _execute(self, query, error_message: str) -> Any:
        """
        Ejecuta una consulta del SDK y retorna `data`.

        Args:
            query: Query builder listo para execute()
            error_message: Mensaje apto para el usuario si falla

        Returns:
            Lista de filas (o el valor escalar de un rpc)

        Raises:
            BackendError: Si el backend o la red fallan
        """
        try:
            response = query.execute()
        except APIError as e:
            logger.error("%s [tabla=%s]: %s", error_message, self.table_name, e.message)
            raise BackendError(error_message, e) from e
        except httpx.HTTPError as e:
            logger.error("%s [tabla=%s]: error de red %s", error_message, self.table_name, e)
            raise BackendError(error_message, e) from e
        return response.data

    def _fetch_all(self, build_query: Callable[[], Any], error_message: str) -> List[Dict[str, Any]]:
        """
        Lee todas las filas de un listado, página por página.

        Args:
            build_query: Retorna un query builder NUEVO (con filtros y orden)
            error_message: Mensaje apto para el usuario si falla
        """
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            query = build_query().range(start, start + self.page_size - 1)
            page = self._execute(query, error_message) or []
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            start += self.page_size

    def _rpc(self, function_name: str, params: Dict[str, Any], error_message: str) -> Any:
        """Llama a un procedimiento remoto y retorna su resultado."""
        return self._execute(self.client.rpc(function_name, params), error_message)

    # =========================================================================
    # OPERACIONES GENÉRICAS POR ID
    # =========================================================================

    def find_by_id(self, record_id: Any, columns: str = '*') -> Optional[Dict[str, Any]]:
        """
        Obtiene una fila por su id.

        Returns:
            La fila o None si no existe
        """
        query = self._table().select(columns).eq('id', record_id).limit(1)
        rows = self._execute(query, f"No fue posible cargar el registro {record_id}")
        return rows[0] if rows else None

    def insert(self, row: Any, error_message: str = None) -> List[Dict[str, Any]]:
        """Inserta una fila (dict) o varias (lista) y retorna las insertadas."""
        message = error_message or f"No fue posible guardar en {self.table_name}"
        return self._execute(self._table().insert(row), message) or []

    def update_by_id(
        self,
        record_id: Any,
        values: Dict[str, Any],
        error_message: str = None
    ) -> Optional[Dict[str, Any]]:
        """Actualiza una fila por id y retorna la fila actualizada (o None)."""
        message = error_message or f"No fue posible actualizar el registro {record_id}"
        rows = self._execute(self._table().update(values).eq('id', record_id), message)
        return rows[0] if rows else None

    def delete_by_id(self, record_id: Any, error_message: str = None) -> None:
        """Elimina una fila por id."""
        message = error_message or f"No fue posible eliminar el registro {record_id}"
        self._execute(self._table().delete().eq('id', record_id), message)
