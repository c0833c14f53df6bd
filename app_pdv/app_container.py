# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Proporciona una forma centralizada de obtener repositorios y servicios.
#
# A diferencia de un singleton global, hay UN contenedor por request
# (guardado en flask.g) porque los clientes del backend dependen de:
#   - El token del usuario autenticado (políticas por fila)
#   - El tenant activo (otro proyecto, otra URL)
#
# ═══════════════════════════════════════════════════════════════════════════════
# QUÉ CLIENTE USA CADA REPOSITORIO
# ═══════════════════════════════════════════════════════════════════════════════
#
#   profiles, tenants, tenant_users, auth   → cliente PRINCIPAL
#   products, sales, sale_items             → cliente del TENANT activo
#                                             (o el principal si no hay tenant)
#
# ==============================================================================

from typing import Any, Callable, Dict, Optional

from flask import current_app, g, session

# ═══════════════════════════════════════════════════════════════════════════════
# REPOSITORIOS - Capa de acceso al backend
# ═══════════════════════════════════════════════════════════════════════════════
from app_pdv.repositories import (
    AuthGateway,
    ProductRepository,
    SaleItemRepository,
    SalesRepository,
    TenantRepository,
    UserRepository,
    build_client,
)

# ═══════════════════════════════════════════════════════════════════════════════
# SERVICIOS - Capa de lógica de negocio
# ═══════════════════════════════════════════════════════════════════════════════
from app_pdv.services import (
    AuthService,
    CartService,
    ProductService,
    ReportService,
    SalesService,
    TenantService,
    UserService,
)
from app_pdv.models import Tenant


class AppContainer:
    """
    Contenedor de dependencias de una request.

    Todo se construye de forma perezosa: una página que solo lista productos
    no crea el cliente principal ni el de administración.

    Uso:
        container = get_container()
        products = container.product_service.get_all_products()
    """

    def __init__(
        self,
        config: Dict[str, Any],
        access_token: str = None,
        tenant: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            config: app.config (URL, claves, fábrica de clientes)
            access_token: Token del usuario autenticado (opcional)
            tenant: Tenant activo tal como se guarda en la sesión (opcional)
        """
        self._config = config
        self._access_token = access_token
        self._tenant_data = tenant

        self._main_client = None
        self._data_client = None
        self._admin_client = None

        self._product_repo: Optional[ProductRepository] = None
        self._sales_repo: Optional[SalesRepository] = None
        self._item_repo: Optional[SaleItemRepository] = None
        self._user_repo: Optional[UserRepository] = None
        self._tenant_repo: Optional[TenantRepository] = None
        self._auth_gateway: Optional[AuthGateway] = None

        self._auth_service: Optional[AuthService] = None
        self._tenant_service: Optional[TenantService] = None
        self._product_service: Optional[ProductService] = None
        self._cart_service: Optional[CartService] = None
        self._sales_service: Optional[SalesService] = None
        self._user_service: Optional[UserService] = None
        self._report_service: Optional[ReportService] = None

    @property
    def client_factory(self) -> Optional[Callable]:
        return self._config.get('BACKEND_CLIENT_FACTORY')

    # =========================================================================
    # CLIENTES DEL BACKEND
    # =========================================================================

    @property
    def main_client(self):
        """Cliente del proyecto principal (con el token del usuario)."""
        if self._main_client is None:
            self._main_client = build_client(
                self.client_factory,
                self._config.get('SUPABASE_URL'),
                self._config.get('SUPABASE_ANON_KEY'),
                self._access_token,
            )
        return self._main_client

    @property
    def data_client(self):
        """Cliente de las tablas de negocio: el del tenant activo o el principal."""
        if self._data_client is None:
            if self._tenant_data:
                tenant = Tenant.from_dict(self._tenant_data)
                self._data_client = self.tenant_service.client_for(tenant)
            else:
                self._data_client = self.main_client
        return self._data_client

    def new_main_client(self):
        """Cliente anónimo nuevo del proyecto principal (no se comparte)."""
        return build_client(
            self.client_factory,
            self._config.get('SUPABASE_URL'),
            self._config.get('SUPABASE_ANON_KEY'),
        )

    @property
    def admin_client(self):
        """Cliente con clave de servicio (None si no está configurada)."""
        service_key = self._config.get('SUPABASE_SERVICE_KEY')
        if self._admin_client is None and service_key:
            self._admin_client = build_client(
                self.client_factory,
                self._config.get('SUPABASE_URL'),
                service_key,
            )
        return self._admin_client

    # =========================================================================
    # REPOSITORIOS
    # =========================================================================

    @property
    def product_repo(self) -> ProductRepository:
        if self._product_repo is None:
            self._product_repo = ProductRepository(self.data_client)
        return self._product_repo

    @property
    def sales_repo(self) -> SalesRepository:
        if self._sales_repo is None:
            self._sales_repo = SalesRepository(self.data_client)
        return self._sales_repo

    @property
    def item_repo(self) -> SaleItemRepository:
        if self._item_repo is None:
            self._item_repo = SaleItemRepository(self.data_client)
        return self._item_repo

    @property
    def user_repo(self) -> UserRepository:
        if self._user_repo is None:
            self._user_repo = UserRepository(self.main_client)
        return self._user_repo

    @property
    def tenant_repo(self) -> TenantRepository:
        if self._tenant_repo is None:
            self._tenant_repo = TenantRepository(self.main_client)
        return self._tenant_repo

    @property
    def auth_gateway(self) -> AuthGateway:
        if self._auth_gateway is None:
            self._auth_gateway = AuthGateway(
                self.main_client,
                self.admin_client,
                client_factory=self.new_main_client,
            )
        return self._auth_gateway

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def auth_service(self) -> AuthService:
        if self._auth_service is None:
            self._auth_service = AuthService(self.auth_gateway, self.user_repo)
        return self._auth_service

    @property
    def tenant_service(self) -> TenantService:
        if self._tenant_service is None:
            self._tenant_service = TenantService(self.tenant_repo, self.client_factory)
        return self._tenant_service

    @property
    def product_service(self) -> ProductService:
        if self._product_service is None:
            self._product_service = ProductService(
                self.product_repo,
                self._config.get('LOW_STOCK_THRESHOLD', 5)
            )
        return self._product_service

    @property
    def cart_service(self) -> CartService:
        if self._cart_service is None:
            self._cart_service = CartService(self.product_service)
        return self._cart_service

    @property
    def sales_service(self) -> SalesService:
        if self._sales_service is None:
            self._sales_service = SalesService(
                self.sales_repo,
                self.item_repo,
                self.product_repo
            )
        return self._sales_service

    @property
    def user_service(self) -> UserService:
        if self._user_service is None:
            self._user_service = UserService(self.user_repo, self.auth_gateway)
        return self._user_service

    @property
    def report_service(self) -> ReportService:
        if self._report_service is None:
            self._report_service = ReportService(
                self.sales_repo,
                self.item_repo,
                self.product_repo,
                self._config.get('LOW_STOCK_THRESHOLD', 5)
            )
        return self._report_service

    @property
    def data_project_url(self) -> str:
        """URL del proyecto con los datos de negocio (para tiempo real)."""
        if self._tenant_data:
            return self._tenant_data.get('supabase_url', '')
        return self._config.get('SUPABASE_URL', '')

    @property
    def data_project_key(self) -> str:
        if self._tenant_data:
            return self._tenant_data.get('supabase_anon_key', '')
        return self._config.get('SUPABASE_ANON_KEY', '')


def get_container() -> AppContainer:
    """
    Contenedor de la request actual (se crea la primera vez que se pide).

    Returns:
        Instancia del contenedor
    """
    if 'container' not in g:
        tokens = session.get('tokens') or {}
        g.container = AppContainer(
            current_app.config,
            access_token=tokens.get('access_token'),
            tenant=session.get('tenant'),
        )
    return g.container
