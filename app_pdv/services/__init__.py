# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Los servicios dependen de las interfaces de repositorio, nunca del SDK.
# Las rutas solo orquestan: request → servicio → respuesta.
#
# ESTRUCTURA:
# ├── auth_service.py      → login, registro, logout
# ├── tenant_service.py    → tenants del usuario y tenant activo
# ├── product_service.py   → catálogo, búsqueda y stock
# ├── cart_service.py      → carrito del punto de venta (sesión)
# ├── sales_service.py     → registrar / anular / consultar ventas
# ├── user_service.py      → perfiles, roles y permisos
# ├── report_service.py    → panel, reportes y exportación CSV
# └── realtime_service.py  → cambios en tiempo real → refresco de vistas
# ==============================================================================

from .auth_service import AuthService
from .tenant_service import TenantService
from .product_service import ProductService
from .cart_service import CartService
from .sales_service import SalesService
from .user_service import UserService
from .report_service import ReportService
from .realtime_service import RealtimeHub, RealtimeListener, TABLE_VIEWS

__all__ = [
    'AuthService',
    'TenantService',
    'ProductService',
    'CartService',
    'SalesService',
    'UserService',
    'ReportService',
    'RealtimeHub',
    'RealtimeListener',
    'TABLE_VIEWS',
]
