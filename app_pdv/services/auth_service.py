# ==============================================================================
# SERVICIO DE AUTENTICACIÓN
# ==============================================================================
# Login, registro y logout contra el proveedor de autenticación del backend.
# El perfil (rol, permisos, activo) se lee de la tabla profiles.
#
# El servicio NO toca la sesión Flask: retorna el payload y la ruta decide
# qué guardar.
# ==============================================================================

import logging
from typing import Any, Dict, Optional

from app_pdv.errors import AuthenticationError, ValidationError
from app_pdv.models import Profile, UserRole
from app_pdv.repositories.auth_gateway import AuthGateway
from app_pdv.repositories.interfaces import IUserRepository

logger = logging.getLogger(__name__)


class AuthService:
    """
    Servicio de autenticación.

    Responsabilidades:
    - Iniciar sesión (credenciales + perfil activo)
    - Crear cuenta (proveedor + perfil)
    - Renovar tokens vencidos
    - Cerrar sesión
    """

    MIN_PASSWORD_LENGTH = 6

    def __init__(self, auth_gateway: AuthGateway, user_repo: IUserRepository):
        self.auth_gateway = auth_gateway
        self.user_repo = user_repo

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Inicia sesión.

        Args:
            email: Email del usuario
            password: Contraseña en texto plano

        Returns:
            {'user': Profile.to_session(), 'tokens': {access_token, refresh_token}}

        Raises:
            ValidationError: Campos vacíos
            AuthenticationError: Credenciales inválidas o cuenta desactivada
        """
        email = (email or '').strip().lower()
        if not email or not password:
            raise ValidationError('Email y contraseña son obligatorios')

        result = self.auth_gateway.sign_in(email, password)
        user = result['user']

        row = self.user_repo.get_user(user['id'])
        if row is None:
            # Cuenta creada fuera de la aplicación: se completa el perfil
            row = self._create_profile(user['id'], user['email'] or email,
                                       user['metadata'].get('name', ''))
        profile = Profile.from_dict(row)

        if not profile.active:
            self.auth_gateway.sign_out(result['session']['access_token'])
            logger.warning("Inicio de sesión de cuenta desactivada: %s", email)
            raise AuthenticationError('Su cuenta está desactivada. Contacte al administrador.')

        logger.info("Inicio de sesión: %s", email)
        return {'user': profile.to_session(), 'tokens': result['session']}

    def signup(
        self,
        email: str,
        password: str,
        name: str,
        confirm_password: str = None
    ) -> Optional[Dict[str, Any]]:
        """
        Crea una cuenta nueva con rol user.

        Returns:
            Payload de sesión si el proveedor inició sesión,
            None si la cuenta requiere confirmación por email

        Raises:
            ValidationError: Campos inválidos o contraseñas distintas
        """
        email = (email or '').strip().lower()
        name = (name or '').strip()
        if not email or not password or not name:
            raise ValidationError('Nombre, email y contraseña son obligatorios')
        if confirm_password is not None and password != confirm_password:
            raise ValidationError('Las contraseñas no coinciden')
        if len(password) < self.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f'La contraseña debe tener al menos {self.MIN_PASSWORD_LENGTH} caracteres'
            )

        result = self.auth_gateway.sign_up(email, password, name)
        row = self._create_profile(result['user']['id'], email, name)
        logger.info("Cuenta creada: %s", email)

        if not result['session']:
            return None
        return {'user': Profile.from_dict(row).to_session(), 'tokens': result['session']}

    def logout(self, access_token: str = None) -> None:
        """Revoca en el proveedor la sesión del token recibido."""
        self.auth_gateway.sign_out(access_token)

    def refresh_session(self, user_id: str, refresh_token: str) -> Dict[str, Any]:
        """
        Renueva los tokens vencidos y vuelve a leer el perfil.

        Un perfil desactivado (o borrado) mientras la sesión estaba abierta
        no recibe tokens nuevos.

        Returns:
            {'user': Profile.to_session(), 'tokens': {access_token, refresh_token}}

        Raises:
            AuthenticationError: Token de refresco inválido o cuenta desactivada
        """
        tokens = self.auth_gateway.refresh(refresh_token)
        profile = self.get_profile(user_id)
        if profile is None or not profile.active:
            self.auth_gateway.sign_out(tokens['access_token'])
            logger.warning("Sesión cerrada al renovar: perfil %s inactivo", user_id)
            raise AuthenticationError('Su cuenta está desactivada. Contacte al administrador.')

        logger.info("Sesión renovada: %s", profile.email)
        return {'user': profile.to_session(), 'tokens': tokens}

    def get_profile(self, user_id: str) -> Optional[Profile]:
        """Perfil actual (None si no existe)."""
        row = self.user_repo.get_user(user_id) if user_id else None
        return Profile.from_dict(row) if row else None

    def _create_profile(self, user_id: str, email: str, name: str) -> Dict[str, Any]:
        row = {
            'id': user_id,
            'email': email,
            'name': name or email,
            'role': UserRole.USER.value,
            'active': True,
            'permissions': {},
        }
        return self.user_repo.create_user(row) or row
