# ==============================================================================
# ENTIDADES DEL DOMINIO - Definiciones de dataclasses
# ==============================================================================
# Cada entidad refleja una fila de una tabla del backend alojado.
# La aplicación no es dueña de estos datos: las entidades solo validan y
# convierten entre formularios, filas del backend y vistas.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, timezone


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class UserRole(str, Enum):
    """Roles de usuario disponibles en el sistema."""
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class SaleStatus(str, Enum):
    """Estados posibles de una venta."""
    COMPLETED = "completed"    # Venta finalizada en caja
    CANCELLED = "cancelled"    # Venta anulada (stock devuelto)


class TenantStatus(str, Enum):
    """Estados de un tenant."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


# Permisos granulares que se guardan en profiles.permissions
PERMISSION_KEYS = ('manageUsers', 'manageProducts', 'manageSales', 'viewReports')


def utc_now_iso() -> str:
    """Timestamp ISO en UTC, el formato que espera el backend."""
    return datetime.now(timezone.utc).isoformat()


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ==============================================================================
# ENTIDADES DE USUARIO
# ==============================================================================

@dataclass
class Profile:
    """
    Perfil de usuario (tabla profiles).

    El id coincide con el id del usuario en el proveedor de autenticación.
    """
    id: str
    email: str
    name: str = ''
    role: str = UserRole.USER.value
    active: bool = True
    permissions: Dict[str, bool] = field(default_factory=dict)
    avatar_url: Optional[str] = None
    is_system_admin: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value or self.is_system_admin

    def can(self, permission: str) -> bool:
        """Verifica un permiso granular (los admins tienen todos)."""
        if self.is_admin:
            return True
        return bool(self.permissions.get(permission))

    def to_session(self) -> Dict[str, Any]:
        """Datos mínimos que se guardan en la sesión Flask."""
        return {
            'user_id': self.id,
            'email': self.email,
            'name': self.name or self.email,
            'role': self.role,
            'permissions': dict(self.permissions),
            'is_system_admin': self.is_system_admin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Profile':
        """Crea instancia desde una fila de profiles."""
        permissions = data.get('permissions') or {}
        if not isinstance(permissions, dict):
            permissions = {}
        active = data.get('active')
        return cls(
            id=str(data.get('id', '')),
            email=data.get('email') or '',
            name=data.get('name') or '',
            role=data.get('role') or UserRole.USER.value,
            active=True if active is None else bool(active),
            permissions={k: bool(permissions.get(k)) for k in PERMISSION_KEYS},
            avatar_url=data.get('avatar_url'),
            is_system_admin=bool(data.get('is_system_admin')),
        )


# ==============================================================================
# ENTIDADES DE INVENTARIO
# ==============================================================================

@dataclass
class Product:
    """
    Producto del catálogo (tabla products).

    Attributes:
        code: Código interno
        name: Nombre visible
        barcode: Código de barras
        price: Precio de venta
        stock: Unidades en inventario
        category: Categoría
    """
    code: str
    name: str
    barcode: str = ''
    price: float = 0.0
    stock: int = 0
    category: str = ''
    image_url: Optional[str] = None
    id: Optional[int] = None

    def validate(self) -> List[str]:
        """Retorna la lista de errores de validación (vacía si es válido)."""
        errors = []
        if not self.code:
            errors.append('El código es obligatorio')
        if not self.name:
            errors.append('El nombre del producto es obligatorio')
        if not self.barcode:
            errors.append('El código de barras es obligatorio')
        if not self.category:
            errors.append('La categoría es obligatoria')
        if self.price < 0:
            errors.append('El precio no puede ser negativo')
        if self.stock < 0:
            errors.append('El stock no puede ser negativo')
        return errors

    def to_row(self) -> Dict[str, Any]:
        """Fila para insertar en products."""
        return {
            'code': self.code,
            'name': self.name,
            'barcode': self.barcode,
            'price': round(self.price, 2),
            'stock': self.stock,
            'category': self.category,
            'image_url': self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        """
        Crea instancia desde un formulario o una fila del backend.

        Raises:
            ValueError: Si precio o stock no son numéricos
        """
        stock_raw = data.get('stock', 0)
        if stock_raw in (None, ''):
            stock_raw = 0
        price_raw = data.get('price', 0)
        if price_raw in (None, ''):
            price_raw = 0
        return cls(
            id=data.get('id'),
            code=(data.get('code') or '').strip(),
            name=(data.get('name') or '').strip(),
            barcode=(data.get('barcode') or '').strip(),
            price=float(price_raw),
            stock=int(stock_raw),
            category=(data.get('category') or '').strip(),
            image_url=data.get('image_url') or None,
        )


# ==============================================================================
# ENTIDADES DE VENTAS
# ==============================================================================

@dataclass
class CartItem:
    """
    Línea del carrito / de la venta.

    Attributes:
        product_id: ID del producto
        name: Nombre (para mostrar y para mensajes de error)
        code: Código del producto
        quantity: Cantidad
        price: Precio unitario
    """
    product_id: int
    name: str
    quantity: int
    price: float
    code: str = ''

    @property
    def subtotal(self) -> float:
        return round(self.quantity * self.price, 2)

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario (sesión Flask)."""
        return {
            'product_id': self.product_id,
            'name': self.name,
            'code': self.code,
            'quantity': self.quantity,
            'price': self.price,
            'subtotal': self.subtotal,
        }

    def to_item_row(self, sale_id: str) -> Dict[str, Any]:
        """Fila para insertar en sale_items."""
        return {
            'sale_id': sale_id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'price': round(self.price, 2),
            'subtotal': self.subtotal,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        """
        Crea instancia desde diccionario.

        Raises:
            ValueError: Si cantidad o precio no son numéricos
        """
        product_id = data.get('product_id', data.get('id'))
        return cls(
            product_id=int(product_id),
            name=data.get('name') or '',
            code=data.get('code') or '',
            quantity=int(data.get('quantity', 0)),
            price=float(data.get('price', 0)),
        )


@dataclass
class Sale:
    """
    Venta registrada (tabla sales) con sus líneas (tabla sale_items).
    """
    id: str
    total: float = 0.0
    item_count: int = 0
    status: str = SaleStatus.COMPLETED.value
    payment_method: Optional[str] = None
    customer: Optional[str] = None
    observations: Optional[str] = None
    date: str = ''
    items: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if not self.date:
            self.date = utc_now_iso()

    @property
    def is_cancelled(self) -> bool:
        return self.status == SaleStatus.CANCELLED.value

    def to_row(self) -> Dict[str, Any]:
        """Fila para insertar en sales."""
        return {
            'id': self.id,
            'date': self.date,
            'total': round(self.total, 2),
            'item_count': self.item_count,
            'status': self.status,
            'payment_method': self.payment_method,
            'customer': self.customer or None,
            'observations': self.observations or None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Sale':
        """Crea instancia desde una fila de sales."""
        return cls(
            id=str(data.get('id', '')),
            total=_to_float(data.get('total')),
            item_count=int(data.get('item_count') or 0),
            status=data.get('status') or SaleStatus.COMPLETED.value,
            payment_method=data.get('payment_method'),
            customer=data.get('customer'),
            observations=data.get('observations'),
            date=data.get('date') or data.get('created_at') or '',
            items=list(data.get('items') or []),
        )


# ==============================================================================
# ENTIDADES DE TENANT
# ==============================================================================

@dataclass
class Tenant:
    """
    Proyecto de backend específico de un cliente (tabla tenants).
    """
    id: str
    name: str
    supabase_url: str
    supabase_anon_key: str
    status: str = TenantStatus.ACTIVE.value
    supabase_service_key: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

    def to_session(self) -> Dict[str, Any]:
        """Datos del tenant activo en sesión. La clave de servicio nunca se guarda."""
        return {
            'id': self.id,
            'name': self.name,
            'supabase_url': self.supabase_url,
            'supabase_anon_key': self.supabase_anon_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tenant':
        """Crea instancia desde una fila de tenants."""
        return cls(
            id=str(data.get('id', '')),
            name=data.get('name') or '',
            supabase_url=data.get('supabase_url') or '',
            supabase_anon_key=data.get('supabase_anon_key') or '',
            status=data.get('status') or TenantStatus.ACTIVE.value,
            supabase_service_key=data.get('supabase_service_key'),
        )
