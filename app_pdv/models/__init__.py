# ==============================================================================
# CAPA DE MODELOS - Estructuras de datos del sistema
# ==============================================================================
# Entidades del dominio como dataclasses. Los datos viven en el backend
# alojado; estas clases validan formularios y convierten filas.
# ==============================================================================

from .entities import (
    # Usuarios
    Profile,
    UserRole,
    PERMISSION_KEYS,

    # Productos
    Product,

    # Ventas
    Sale,
    SaleStatus,
    CartItem,

    # Tenants
    Tenant,
    TenantStatus,

    utc_now_iso,
)

__all__ = [
    'Profile',
    'UserRole',
    'PERMISSION_KEYS',
    'Product',
    'Sale',
    'SaleStatus',
    'CartItem',
    'Tenant',
    'TenantStatus',
    'utc_now_iso',
]
