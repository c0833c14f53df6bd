# ==============================================================================
# REPOSITORIO DE TENANTS
# ==============================================================================
# Tablas tenants y tenant_users del proyecto PRINCIPAL. Siempre se usa con
# el cliente principal, nunca con el cliente de un tenant.
# ==============================================================================

from typing import Any, Dict, List, Optional

from app_pdv.repositories.base import SupabaseRepository


class TenantRepository(SupabaseRepository):
    """Repositorio de tenants y de su asociación con usuarios."""

    table_name = 'tenants'
    members_table = 'tenant_users'

    def get_tenant_ids_for_user(self, user_id: str) -> List[str]:
        """IDs de los tenants a los que pertenece el usuario."""
        query = self._table(self.members_table).select('tenant_id').eq('user_id', user_id)
        rows = self._execute(query, "No fue posible cargar las asociaciones de tenant") or []
        return [row['tenant_id'] for row in rows if row.get('tenant_id')]

    def list_by_ids(self, tenant_ids: List[str]) -> List[Dict[str, Any]]:
        if not tenant_ids:
            return []
        query = self._table().select('*').in_('id', tenant_ids)
        return self._execute(query, "No fue posible cargar los tenants") or []

    def get_tenant(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        return self.find_by_id(tenant_id)

    def create_tenant(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.insert(row, "No fue posible crear el tenant")
        return rows[0] if rows else None

    def add_member(self, tenant_id: str, user_id: str, role: str = 'owner') -> None:
        """Asocia un usuario a un tenant."""
        query = self._table(self.members_table).insert({
            'tenant_id': tenant_id,
            'user_id': user_id,
            'role': role,
        })
        self._execute(query, "No fue posible asociar el usuario al tenant")
