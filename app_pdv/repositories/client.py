# ==============================================================================
# FÁBRICA DE CLIENTES DEL BACKEND
# ==============================================================================
# Un cliente por request: el del proyecto principal o el del tenant activo.
# Si hay sesión, las consultas a tablas viajan con el token del usuario
# para que el backend aplique sus políticas de acceso por fila.
#
# Los clientes viven lo que dura la request: sin refresco automático del
# token (lo hace el hook de la aplicación) ni sesión persistida en el SDK.
# ==============================================================================

from typing import Callable, Optional

from supabase import Client, create_client
from supabase.client import ClientOptions

from app_pdv.errors import BackendError

ClientFactory = Callable[[str, str], Client]


def default_client_factory(url: str, key: str) -> Client:
    """Crea un cliente síncrono del SDK."""
    return create_client(
        url,
        key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


def build_client(
    factory: Optional[ClientFactory],
    url: str,
    key: str,
    access_token: str = None
) -> Client:
    """
    Construye un cliente listo para usar.

    Args:
        factory: Fábrica configurada (None → create_client)
        url: URL del proyecto
        key: Clave anónima o de servicio
        access_token: Token del usuario autenticado (opcional)

    Raises:
        BackendError: Si falta URL o clave
    """
    if not url or not key:
        raise BackendError("El backend no está configurado (URL o clave ausente)")
    client = (factory or default_client_factory)(url, key)
    if access_token:
        client.postgrest.auth(access_token)
    return client
