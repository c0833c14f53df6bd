# ==============================================================================
# SERVICIO DE TENANTS
# ==============================================================================
# Un tenant es un proyecto de backend propio de un cliente. Las filas de
# tenants y tenant_users viven en el proyecto PRINCIPAL; los datos de
# negocio (products, sales, sale_items) viven en el proyecto del tenant.
#
# El tenant activo se guarda en la sesión (id, nombre, URL y clave anónima).
# En cada request se construye un cliente con esa URL y clave.
# ==============================================================================

import logging
from typing import Any, Callable, Dict, List

from app_pdv.errors import NotFoundError, ValidationError
from app_pdv.models import Tenant, TenantStatus, utc_now_iso
from app_pdv.repositories.client import build_client
from app_pdv.repositories.interfaces import ITenantRepository

logger = logging.getLogger(__name__)


class TenantService:
    """
    Servicio para gestión de tenants.

    Responsabilidades:
    - Listar los tenants de un usuario
    - Validar el cambio de tenant (la ruta lo guarda en la sesión)
    - Construir el cliente de un tenant
    - Alta de tenants
    """

    def __init__(self, tenant_repo: ITenantRepository, client_factory: Callable = None):
        """
        Args:
            tenant_repo: Repositorio de tenants (SIEMPRE con el cliente principal)
            client_factory: Fábrica (url, key) → cliente del SDK
        """
        self.tenant_repo = tenant_repo
        self.client_factory = client_factory

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def fetch_tenants(self, user_id: str) -> List[Tenant]:
        """Tenants asociados al usuario (lista vacía si no tiene)."""
        tenant_ids = self.tenant_repo.get_tenant_ids_for_user(user_id)
        if not tenant_ids:
            return []
        rows = self.tenant_repo.list_by_ids(tenant_ids)
        return [Tenant.from_dict(row) for row in rows]

    def get_tenant(self, tenant_id: str) -> Tenant:
        """
        Raises:
            NotFoundError: Si el tenant no existe
        """
        row = self.tenant_repo.get_tenant(tenant_id)
        if not row:
            raise NotFoundError('Tenant no encontrado')
        return Tenant.from_dict(row)

    # =========================================================================
    # TENANT ACTIVO
    # =========================================================================

    def client_for(self, tenant: Tenant):
        """Cliente del SDK para el proyecto del tenant (clave anónima)."""
        return build_client(self.client_factory, tenant.supabase_url, tenant.supabase_anon_key)

    def switch_tenant(self, tenant_id: str, user_id: str = None) -> Tenant:
        """
        Cambia al tenant indicado.

        Args:
            tenant_id: Tenant destino
            user_id: Si se indica, se exige que el usuario pertenezca al tenant

        Raises:
            NotFoundError: Tenant inexistente (o ajeno al usuario)
            ValidationError: Tenant inactivo
        """
        if user_id is not None and tenant_id not in self.tenant_repo.get_tenant_ids_for_user(user_id):
            raise NotFoundError('Tenant no encontrado')

        tenant = self.get_tenant(tenant_id)
        if not tenant.is_active:
            raise ValidationError(f'El tenant {tenant.name} no está activo')

        logger.info("Tenant activo: %s (%s)", tenant.name, tenant.id)
        return tenant

    def init_tenants(self, user_id: str) -> Dict[str, Any]:
        """
        Carga los tenants tras el login. Con exactamente uno, lo selecciona.

        Returns:
            {'tenants': [...], 'current': Tenant o None}
        """
        tenants = self.fetch_tenants(user_id)
        current = None
        if len(tenants) == 1 and tenants[0].is_active:
            current = tenants[0]
        return {'tenants': tenants, 'current': current}

    # =========================================================================
    # ALTA
    # =========================================================================

    def create_tenant(
        self,
        user_id: str,
        name: str,
        supabase_url: str,
        supabase_anon_key: str,
        supabase_service_key: str = None
    ) -> Tenant:
        """
        Crea un tenant y asocia al usuario como owner.

        Raises:
            ValidationError: Falta nombre, URL o clave anónima
        """
        name = (name or '').strip()
        supabase_url = (supabase_url or '').strip().rstrip('/')
        supabase_anon_key = (supabase_anon_key or '').strip()
        if not name or not supabase_url or not supabase_anon_key:
            raise ValidationError('Nombre, URL y clave anónima son obligatorios')
        if not supabase_url.startswith(('https://', 'http://')):
            raise ValidationError('La URL del proyecto debe comenzar con http:// o https://')

        row = {
            'name': name,
            'supabase_url': supabase_url,
            'supabase_anon_key': supabase_anon_key,
            'status': TenantStatus.ACTIVE.value,
            'created_at': utc_now_iso(),
        }
        if supabase_service_key:
            row['supabase_service_key'] = supabase_service_key.strip()

        created = self.tenant_repo.create_tenant(row)
        if not created:
            raise ValidationError('El backend no retornó el tenant creado')
        tenant = Tenant.from_dict(created)
        self.tenant_repo.add_member(tenant.id, user_id, 'owner')
        logger.info("Tenant creado: %s por %s", tenant.name, user_id)
        return tenant
