# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso al backend alojado
# ==============================================================================
# Esta capa encapsula todo el acceso a Supabase (tablas, rpc, autenticación).
# Los servicios dependen de las interfaces, no de las implementaciones.
#
# ESTRUCTURA:
# ├── interfaces.py          → Protocolos (contratos)
# ├── client.py              → Fábrica de clientes (principal / tenant)
# ├── base.py                → SupabaseRepository (ejecución + errores)
# ├── product_repository.py  → products + search_products + check_stock_availability
# ├── sales_repository.py    → sales, sale_items
# ├── user_repository.py     → profiles
# ├── tenant_repository.py   → tenants, tenant_users
# └── auth_gateway.py        → proveedor de autenticación
# ==============================================================================

from .interfaces import (
    IProductRepository,
    ISalesRepository,
    ISaleItemRepository,
    IUserRepository,
    ITenantRepository,
)

from .base import SupabaseRepository
from .client import build_client, default_client_factory
from .product_repository import ProductRepository
from .sales_repository import SalesRepository, SaleItemRepository
from .user_repository import UserRepository
from .tenant_repository import TenantRepository
from .auth_gateway import AuthGateway, token_expired

__all__ = [
    # Interfaces
    'IProductRepository',
    'ISalesRepository',
    'ISaleItemRepository',
    'IUserRepository',
    'ITenantRepository',

    # Base y clientes
    'SupabaseRepository',
    'build_client',
    'default_client_factory',

    # Implementaciones Supabase
    'ProductRepository',
    'SalesRepository',
    'SaleItemRepository',
    'UserRepository',
    'TenantRepository',
    'AuthGateway',
    'token_expired',
]
