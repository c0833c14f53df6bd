# ==============================================================================
# INTERFACES DE REPOSITORIOS
# ==============================================================================
#
# Los servicios dependen de estos protocolos, no de las clases concretas:
#
# 1. INDEPENDENCIA DEL BACKEND
#    - Hoy cada repositorio habla con Supabase (postgrest + rpc)
#    - Otro backend solo requiere una nueva implementación
#
# 2. TESTING
#    - Fácil crear dobles que implementen estas interfaces
#
# ==============================================================================

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class IProductRepository(Protocol):
    """Catálogo de productos + procedimientos remotos de búsqueda y stock."""

    def list_products(self) -> List[Dict[str, Any]]:
        ...

    def get_product(self, pid: int) -> Optional[Dict[str, Any]]:
        ...

    def create_product(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def update_product(self, pid: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def delete_product(self, pid: int) -> None:
        ...

    def search(self, term: str) -> List[Dict[str, Any]]:
        ...

    def check_stock_available(self, pid: int, quantity: int) -> bool:
        ...

    def compare_and_set_stock(self, pid: int, expected: int, new_stock: int) -> bool:
        ...

    def list_low_stock(self, threshold: int) -> List[Dict[str, Any]]:
        ...


@runtime_checkable
class ISalesRepository(Protocol):
    """Fila principal de las ventas."""

    def list_sales(self) -> List[Dict[str, Any]]:
        ...

    def list_recent(self, limit: int = 5) -> List[Dict[str, Any]]:
        ...

    def list_between(self, start_iso: str, end_iso: str) -> List[Dict[str, Any]]:
        ...

    def get_sale(self, sale_id: str) -> Optional[Dict[str, Any]]:
        ...

    def create_sale(self, row: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def update_sale(self, sale_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def delete_sale(self, sale_id: str) -> None:
        ...


@runtime_checkable
class ISaleItemRepository(Protocol):
    """Líneas de las ventas."""

    def create_items(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    def get_items(self, sale_id: str) -> List[Dict[str, Any]]:
        ...

    def list_sold_items(self) -> List[Dict[str, Any]]:
        ...

    def delete_by_sale(self, sale_id: str) -> None:
        ...


@runtime_checkable
class IUserRepository(Protocol):
    """Perfiles de usuario."""

    def list_users(self) -> List[Dict[str, Any]]:
        ...

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    def create_user(self, profile: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def delete_user(self, user_id: str) -> None:
        ...


@runtime_checkable
class ITenantRepository(Protocol):
    """Tenants y sus miembros (proyecto principal)."""

    def get_tenant_ids_for_user(self, user_id: str) -> List[str]:
        ...

    def list_by_ids(self, tenant_ids: List[str]) -> List[Dict[str, Any]]:
        ...

    def get_tenant(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        ...

    def create_tenant(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def add_member(self, tenant_id: str, user_id: str, role: str = 'owner') -> None:
        ...
