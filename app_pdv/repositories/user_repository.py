# ==============================================================================
# REPOSITORIO DE USUARIOS (PERFILES)
# ==============================================================================
# Encapsula la tabla profiles. Las credenciales viven en el proveedor de
# autenticación (ver auth_gateway.py); aquí solo hay datos de perfil:
# {id, name, email, role, active, permissions, avatar_url, is_system_admin}
# ==============================================================================

from typing import Any, Dict, List, Optional

from app_pdv.repositories.base import SupabaseRepository


class UserRepository(SupabaseRepository):
    """Repositorio para gestión de perfiles de usuario."""

    table_name = 'profiles'

    def list_users(self) -> List[Dict[str, Any]]:
        """Todos los perfiles ordenados por nombre."""
        return self._fetch_all(
            lambda: self._table().select('*').order('name'),
            "No fue posible cargar los usuarios"
        )

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.find_by_id(user_id)

    def create_user(self, profile: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.insert(profile, "No fue posible crear el usuario")
        return rows[0] if rows else None

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Actualiza SOLO las columnas recibidas.

        Args:
            user_id: ID del perfil
            updates: Columnas a modificar
        """
        return self.update_by_id(user_id, updates, "No fue posible actualizar el usuario")

    def delete_user(self, user_id: str) -> None:
        self.delete_by_id(user_id, "No fue posible eliminar el usuario")
