# ==============================================================================
# CONFIGURACIÓN - Variables de entorno
# ==============================================================================
# Toda la configuración se lee de variables de entorno. create_app() acepta
# un diccionario de overrides (útil para tests: se inyecta un cliente falso
# del backend mediante BACKEND_CLIENT_FACTORY).
#
# Variables:
#   PDV_SECRET_KEY          → Clave de sesión Flask (obligatoria en producción)
#   PDV_PRODUCTION          → "1" activa modo producción (cookies seguras)
#   SUPABASE_URL            → URL del proyecto principal
#   SUPABASE_ANON_KEY       → Clave anónima del proyecto principal
#   SUPABASE_SERVICE_KEY    → Clave de servicio (solo para borrar usuarios)
#   PDV_REALTIME_ENABLED    → "1" activa las suscripciones en tiempo real
#   PDV_REALTIME_STREAM_SECONDS → Duración máxima de cada stream SSE (default 300)
#   PDV_LOW_STOCK_THRESHOLD → Umbral de stock bajo (default 5)
#   PDV_SESSION_HOURS       → Duración de la sesión en horas (default 8)
# ==============================================================================

import os
from typing import Any, Dict

_DEFAULT_SECRET = "app_pdv_dev_secret_key_change_in_production"

# Tiempo de espera del buscador de productos (milisegundos)
SEARCH_DEBOUNCE_MS = 300

# Formas de pago aceptadas en el punto de venta
PAYMENT_METHODS = ('EFECTIVO', 'TARJETA_CREDITO', 'TARJETA_DEBITO', 'TRANSFERENCIA')


def _env_flag(name: str, default: str = '0') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def load_config(overrides: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Construye la configuración de la aplicación.

    Args:
        overrides: Valores que reemplazan a los leídos del entorno

    Returns:
        Diccionario listo para app.config.update()

    Raises:
        RuntimeError: Si PDV_PRODUCTION está activo sin PDV_SECRET_KEY
    """
    production = _env_flag('PDV_PRODUCTION')
    secret = os.environ.get('PDV_SECRET_KEY')

    config = {
        'PRODUCTION_MODE': production,
        'SECRET_KEY': secret or _DEFAULT_SECRET,
        'SUPABASE_URL': os.environ.get('SUPABASE_URL', ''),
        'SUPABASE_ANON_KEY': os.environ.get('SUPABASE_ANON_KEY', ''),
        'SUPABASE_SERVICE_KEY': os.environ.get('SUPABASE_SERVICE_KEY', ''),
        'REALTIME_ENABLED': _env_flag('PDV_REALTIME_ENABLED'),
        'REALTIME_STREAM_SECONDS': _env_int('PDV_REALTIME_STREAM_SECONDS', 300),
        'LOW_STOCK_THRESHOLD': _env_int('PDV_LOW_STOCK_THRESHOLD', 5),
        'PERMANENT_SESSION_LIFETIME': _env_int('PDV_SESSION_HOURS', 8) * 60 * 60,
        'SEARCH_DEBOUNCE_MS': SEARCH_DEBOUNCE_MS,
        'BACKEND_CLIENT_FACTORY': None,
        'ENABLE_PROFILING': True,
    }

    if production:
        config['SESSION_COOKIE_SECURE'] = True
        config['SESSION_COOKIE_HTTPONLY'] = True
        config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    if overrides:
        config.update(overrides)

    if config['PRODUCTION_MODE'] and config['SECRET_KEY'] == _DEFAULT_SECRET:
        raise RuntimeError("PDV_SECRET_KEY debe definirse en producción")

    return config
