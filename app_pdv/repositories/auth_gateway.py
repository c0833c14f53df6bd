# ==============================================================================
# GATEWAY DE AUTENTICACIÓN
# ==============================================================================
# Adaptador del proveedor de autenticación del backend (email + contraseña).
# Solo traduce llamadas y errores del SDK; las reglas de negocio (perfil
# activo, contraseñas coincidentes, etc.) viven en AuthService/UserService.
#
# Ojo con sign_up: el SDK cambia el token del cliente que lo ejecuta al del
# usuario recién creado. Las altas hechas por un administrador usan un
# cliente aparte (register_user) para no perder su token.
# ==============================================================================

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from supabase import AuthApiError, AuthError

from app_pdv.errors import AuthenticationError, BackendError

logger = logging.getLogger(__name__)

# Segundos de margen antes del vencimiento real del token
EXPIRY_LEEWAY_SECONDS = 30


def token_expired(access_token: str, leeway: int = EXPIRY_LEEWAY_SECONDS) -> bool:
    """
    Indica si el token de acceso venció (o vence dentro del margen).

    La firma no se verifica: el backend lo hace en cada consulta. Un token
    que no se puede leer se considera vencido.
    """
    if not access_token:
        return False
    try:
        claims = jwt.decode(access_token, options={'verify_signature': False})
    except jwt.InvalidTokenError:
        return True
    exp = claims.get('exp')
    return exp is not None and float(exp) - leeway <= time.time()


def _session_tokens(response) -> Optional[Dict[str, str]]:
    session = getattr(response, 'session', None)
    if not session:
        return None
    return {
        'access_token': session.access_token,
        'refresh_token': session.refresh_token,
    }


def _user_data(response) -> Dict[str, Any]:
    user = getattr(response, 'user', None)
    if not user:
        return {}
    return {
        'id': str(user.id),
        'email': user.email or '',
        'metadata': dict(user.user_metadata or {}),
    }


class AuthGateway:
    """
    Envuelve `client.auth` del SDK.

    Args:
        client: Cliente del proyecto principal
        admin_client: Cliente con clave de servicio (solo para borrar usuarios)
        client_factory: Crea un cliente anónimo nuevo (altas de usuarios)
    """

    def __init__(self, client, admin_client=None, client_factory: Callable = None):
        self.client = client
        self.admin_client = admin_client
        self.client_factory = client_factory

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """
        Inicia sesión con email y contraseña.

        Returns:
            {'user': {...}, 'session': {'access_token', 'refresh_token'}}

        Raises:
            AuthenticationError: Credenciales inválidas
            BackendError: Falla del proveedor
        """
        try:
            response = self.client.auth.sign_in_with_password({
                'email': email,
                'password': password,
            })
        except AuthApiError as e:
            logger.warning("Inicio de sesión rechazado para %s: %s", email, e)
            raise AuthenticationError("Email o contraseña incorrectos") from e
        except (AuthError, httpx.HTTPError) as e:
            logger.error("Error del proveedor de autenticación: %s", e)
            raise BackendError("No fue posible iniciar sesión", e) from e

        user = _user_data(response)
        tokens = _session_tokens(response)
        if not user or not tokens:
            raise AuthenticationError("Email o contraseña incorrectos")
        return {'user': user, 'session': tokens}

    def sign_up(self, email: str, password: str, name: str, client=None) -> Dict[str, Any]:
        """
        Registra un usuario nuevo.

        Args:
            client: Cliente donde ejecutar el alta (por defecto el principal)

        Returns:
            {'user': {...}, 'session': {...} o None si requiere confirmación}
        """
        client = client or self.client
        try:
            response = client.auth.sign_up({
                'email': email,
                'password': password,
                'options': {'data': {'name': name}},
            })
        except AuthApiError as e:
            logger.warning("Registro rechazado para %s: %s", email, e)
            raise AuthenticationError(f"No fue posible crear la cuenta: {e}") from e
        except (AuthError, httpx.HTTPError) as e:
            logger.error("Error del proveedor de autenticación: %s", e)
            raise BackendError("No fue posible crear la cuenta", e) from e

        user = _user_data(response)
        if not user:
            raise BackendError("El proveedor no retornó el usuario creado")
        return {'user': user, 'session': _session_tokens(response)}

    def register_user(self, email: str, password: str, name: str) -> Dict[str, Any]:
        """
        Alta de un usuario por otro (administrador).

        Se ejecuta en un cliente descartable: el cliente principal conserva
        el token de quien da el alta.

        Raises:
            BackendError: Sin fábrica de clientes o falla del proveedor
        """
        if self.client_factory is None:
            raise BackendError("Crear usuarios requiere un cliente del proyecto principal")
        return self.sign_up(email, password, name, client=self.client_factory())

    def refresh(self, refresh_token: str) -> Dict[str, str]:
        """
        Obtiene tokens nuevos a partir del token de refresco.

        El cliente queda usando el token nuevo en sus consultas.

        Raises:
            AuthenticationError: Token de refresco inválido o revocado
            BackendError: Falla del proveedor
        """
        if not refresh_token:
            raise AuthenticationError("Su sesión expiró. Inicie sesión nuevamente.")
        try:
            response = self.client.auth.refresh_session(refresh_token)
        except AuthApiError as e:
            logger.warning("Refresco de sesión rechazado: %s", e)
            raise AuthenticationError("Su sesión expiró. Inicie sesión nuevamente.") from e
        except (AuthError, httpx.HTTPError) as e:
            logger.error("Error del proveedor al refrescar la sesión: %s", e)
            raise BackendError("No fue posible renovar la sesión", e) from e

        tokens = _session_tokens(response)
        if not tokens:
            raise AuthenticationError("Su sesión expiró. Inicie sesión nuevamente.")
        self.client.postgrest.auth(tokens['access_token'])
        return tokens

    def sign_out(self, access_token: str = None) -> None:
        """
        Cierra la sesión en el proveedor. Los errores solo se registran.

        Args:
            access_token: Token de la sesión a revocar. Sin él se cierra la
                sesión que el cliente abrió con sign_in().
        """
        try:
            if access_token:
                self.client.auth.admin.sign_out(access_token)
            else:
                self.client.auth.sign_out()
        except (AuthError, httpx.HTTPError) as e:
            logger.warning("Error al cerrar sesión en el proveedor: %s", e)

    def delete_user(self, user_id: str) -> None:
        """
        Elimina un usuario del proveedor (requiere clave de servicio).

        Raises:
            BackendError: Sin clave de servicio o falla del proveedor
        """
        if self.admin_client is None:
            raise BackendError("Eliminar usuarios requiere la clave de servicio")
        try:
            self.admin_client.auth.admin.delete_user(user_id)
        except (AuthError, httpx.HTTPError) as e:
            logger.error("Error al eliminar el usuario %s: %s", user_id, e)
            raise BackendError("No fue posible eliminar el usuario", e) from e
