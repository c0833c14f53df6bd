# ==============================================================================
# ERRORES DEL DOMINIO
# ==============================================================================
# Los repositorios traducen los errores del SDK (postgrest / auth) a
# BackendError. Los servicios lanzan errores de validación. Las rutas los
# capturan, los registran y los muestran al usuario con flash().
# ==============================================================================

from typing import Any, Dict, List


class PdvError(Exception):
    """Error base de la aplicación. El mensaje es apto para el usuario."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendError(PdvError):
    """Falla de una llamada al backend alojado."""

    def __init__(self, message: str, original: Exception = None):
        super().__init__(message)
        self.original = original


class AuthenticationError(PdvError):
    """Credenciales inválidas o sesión inexistente."""


class ValidationError(PdvError):
    """Datos de entrada inválidos (campos obligatorios, formatos)."""


class NotFoundError(PdvError):
    """Registro inexistente en el backend."""


class ProtectedUserError(PdvError):
    """Se intentó eliminar, desactivar o degradar a un administrador del sistema."""


class InsufficientStockError(ValidationError):
    """
    Una o más líneas de la venta no tienen stock disponible.

    Attributes:
        failed: Lista de {'product_id', 'name', 'quantity'} que fallaron
    """

    def __init__(self, failed: List[Dict[str, Any]]):
        names = ', '.join(str(f.get('name') or f.get('product_id')) for f in failed)
        super().__init__(f"Stock insuficiente para: {names}")
        self.failed = failed
