# ==============================================================================
# SERVICIO DE USUARIOS
# ==============================================================================
# Centraliza la lógica de negocio de los perfiles de usuario.
#
# - Las credenciales viven en el proveedor de autenticación (AuthGateway)
# - Los datos de perfil viven en la tabla profiles (UserRepository)
#
# REGLA CRÍTICA - ADMINISTRADOR DEL SISTEMA:
# Un perfil con is_system_admin está BLINDADO y NO puede:
# - Ser eliminado
# - Ser desactivado
# - Perder el rol admin
# Estas validaciones se hacen AQUÍ, no en templates ni rutas.
# ==============================================================================

import logging
from typing import Any, Dict, List

from app_pdv.errors import NotFoundError, ProtectedUserError, ValidationError
from app_pdv.models import PERMISSION_KEYS, Profile, UserRole
from app_pdv.repositories.auth_gateway import AuthGateway
from app_pdv.repositories.interfaces import IUserRepository

logger = logging.getLogger(__name__)


class UserService:
    """
    Servicio para gestión de usuarios.

    Responsabilidades:
    - CRUD de perfiles
    - Activar/desactivar cuentas
    - Roles y permisos granulares (con protección del admin del sistema)
    """

    VALID_ROLES = frozenset(role.value for role in UserRole)

    # Columnas de profiles que se pueden modificar desde la aplicación
    UPDATABLE_FIELDS = frozenset(['name', 'email', 'role', 'permissions', 'avatar_url'])

    MIN_PASSWORD_LENGTH = 6

    def __init__(self, user_repo: IUserRepository, auth_gateway: AuthGateway = None):
        self.user_repo = user_repo
        self.auth_gateway = auth_gateway

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_all_users(self) -> List[Dict[str, Any]]:
        return self.user_repo.list_users()

    def get_user(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Si el perfil no existe
        """
        user = self.user_repo.get_user(user_id)
        if not user:
            raise NotFoundError('Usuario no encontrado')
        return user

    # =========================================================================
    # PROTECCIÓN DEL ADMINISTRADOR DEL SISTEMA
    # =========================================================================

    def _check_protected(self, user: Dict[str, Any], action: str) -> None:
        if user.get('is_system_admin'):
            raise ProtectedUserError(f'El administrador del sistema no puede ser {action}')

    def normalize_permissions(self, raw: Any) -> Dict[str, bool]:
        """Deja solo las claves de permisos conocidas, como booleanos."""
        if not isinstance(raw, dict):
            raw = {}
        return {key: bool(raw.get(key)) for key in PERMISSION_KEYS}

    def _validate_role(self, role: str) -> str:
        role = (role or UserRole.USER.value).strip()
        if role not in self.VALID_ROLES:
            raise ValidationError(f'Rol inválido: {role}')
        return role

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_user(
        self,
        email: str,
        password: str,
        name: str,
        role: str = UserRole.USER.value,
        permissions: Dict[str, bool] = None
    ) -> Dict[str, Any]:
        """
        Crea la cuenta en el proveedor y luego el perfil.

        Returns:
            Perfil creado

        Raises:
            ValidationError: Datos inválidos
            AuthenticationError / BackendError: Falla del proveedor
        """
        email = (email or '').strip().lower()
        name = (name or '').strip()
        if not email or not password or not name:
            raise ValidationError('Nombre, email y contraseña son obligatorios')
        if len(password) < self.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f'La contraseña debe tener al menos {self.MIN_PASSWORD_LENGTH} caracteres'
            )
        role = self._validate_role(role)
        if self.auth_gateway is None:
            raise ValidationError('No hay proveedor de autenticación configurado')

        result = self.auth_gateway.register_user(email, password, name)
        profile = Profile(
            id=result['user']['id'],
            email=email,
            name=name,
            role=role,
            active=True,
            permissions=self.normalize_permissions(permissions),
        )
        row = {
            'id': profile.id,
            'email': profile.email,
            'name': profile.name,
            'role': profile.role,
            'active': profile.active,
            'permissions': profile.permissions,
        }
        created = self.user_repo.create_user(row)
        logger.info("Usuario creado: %s (%s)", email, role)
        return created or row

    def update_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Actualización parcial: solo columnas permitidas.

        Raises:
            ValidationError: Sin cambios o rol inválido
            ProtectedUserError: Degradar al admin del sistema
            NotFoundError: Perfil inexistente
        """
        user = self.get_user(user_id)

        updates = {k: v for k, v in data.items() if k in self.UPDATABLE_FIELDS}
        if 'role' in updates:
            updates['role'] = self._validate_role(updates['role'])
            if updates['role'] != UserRole.ADMIN.value:
                self._check_protected(user, 'degradado')
        if 'permissions' in updates:
            updates['permissions'] = self.normalize_permissions(updates['permissions'])
        if 'name' in updates:
            updates['name'] = (updates['name'] or '').strip()
            if not updates['name']:
                raise ValidationError('El nombre es obligatorio')
        if 'email' in updates:
            updates['email'] = (updates['email'] or '').strip().lower()
            if not updates['email']:
                raise ValidationError('El email es obligatorio')
        if not updates:
            raise ValidationError('No hay cambios para guardar')

        updated = self.user_repo.update_user(user_id, updates)
        return updated or {**user, **updates}

    def set_active(self, user_id: str, active: bool) -> Dict[str, Any]:
        """
        Activa o desactiva una cuenta. Solo se envía la columna active.

        Raises:
            ProtectedUserError: Desactivar al admin del sistema
        """
        user = self.get_user(user_id)
        if not active:
            self._check_protected(user, 'desactivado')

        updated = self.user_repo.update_user(user_id, {'active': bool(active)})
        logger.info("Usuario %s %s", user_id, 'activado' if active else 'desactivado')
        return updated or {**user, 'active': bool(active)}

    def toggle_active(self, user_id: str) -> Dict[str, Any]:
        user = self.get_user(user_id)
        current = user.get('active')
        current = True if current is None else bool(current)
        return self.set_active(user_id, not current)

    def delete_user(self, user_id: str, current_user_id: str = None) -> None:
        """
        Elimina la cuenta del proveedor y luego el perfil.

        Raises:
            ProtectedUserError: Eliminar al admin del sistema
            ValidationError: Eliminar la propia cuenta
        """
        user = self.get_user(user_id)
        self._check_protected(user, 'eliminado')
        if current_user_id and current_user_id == user_id:
            raise ValidationError('No puede eliminar su propia cuenta')
        if self.auth_gateway is None:
            raise ValidationError('No hay proveedor de autenticación configurado')

        self.auth_gateway.delete_user(user_id)
        self.user_repo.delete_user(user_id)
        logger.info("Usuario %s eliminado", user_id)

    def save_user(self, form: Dict[str, Any]) -> Dict[str, Any]:
        """
        Alta o edición desde el formulario de usuarios.

        Con user_id → update_user; sin user_id → create_user.
        Los permisos llegan como checkboxes perm_<clave>.
        """
        permissions = {key: bool(form.get(f'perm_{key}')) for key in PERMISSION_KEYS}
        user_id = (form.get('user_id') or '').strip()

        if user_id:
            data = {
                'name': form.get('name', ''),
                'role': form.get('role', ''),
                'permissions': permissions,
            }
            if form.get('email'):
                data['email'] = form['email']
            return self.update_user(user_id, data)

        return self.create_user(
            email=form.get('email', ''),
            password=form.get('password', ''),
            name=form.get('name', ''),
            role=form.get('role') or UserRole.USER.value,
            permissions=permissions,
        )
