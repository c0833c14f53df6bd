from flask import (
    Blueprint, Flask, Response, current_app, flash, redirect, render_template,
    request, session, stream_with_context, url_for,
)
from functools import wraps
import uuid

from app_pdv.config import PAYMENT_METHODS, load_config
from app_pdv.errors import (
    AuthenticationError,
    BackendError,
    NotFoundError,
    PdvError,
    ProtectedUserError,
    ValidationError,
)
from app_pdv.models import PERMISSION_KEYS, SaleStatus, UserRole, Profile
from app_pdv.repositories import token_expired

# Sistema de profiling interno
from app_pdv.performance_logger import init_profiling

# ═══════════════════════════════════════════════════════════════════════════
# CONTENEDOR DE DEPENDENCIAS - Servicios y Repositorios
# ═══════════════════════════════════════════════════════════════════════════
# Las rutas solo orquestan request → servicio → respuesta.
# El contenedor se crea por request con el cliente del tenant activo.
# ═══════════════════════════════════════════════════════════════════════════
from app_pdv.app_container import AppContainer, get_container
from app_pdv.services import CartService, RealtimeHub

bp = Blueprint('pdv', __name__)

# Código HTTP de cada error del dominio en las rutas /api/
ERROR_STATUS = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (ProtectedUserError, 403),
    (NotFoundError, 404),
    (BackendError, 502),
)


def _error_status(error):
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def format_money(amount):
    """Formatea dinero: $ 100.00"""
    try:
        return f"$ {float(amount):.2f}"
    except (TypeError, ValueError):
        return f"$ {amount}"


def to_int(v, default=None):
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _wants_json():
    return request.is_json or request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def _current_profile():
    user = session.get('user') or {}
    return Profile(
        id=user.get('user_id', ''),
        email=user.get('email', ''),
        name=user.get('name', ''),
        role=user.get('role') or UserRole.USER.value,
        permissions=user.get('permissions') or {},
        is_system_admin=bool(user.get('is_system_admin')),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# DECORADORES
# ═══════════════════════════════════════════════════════════════════════════════

def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if "user" not in session:
            if request.path.startswith('/api/'):
                return {"ok": False, "error": "Sesión requerida"}, 401
            flash("Debes iniciar sesión.", "warning")
            return redirect(url_for("pdv.login"))
        return f(*args, **kwargs)
    return wrapper


def permission_required(permission):
    """Exige un permiso granular (los admins tienen todos)."""
    def deco(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if not _current_profile().can(permission):
                if request.path.startswith('/api/'):
                    return {"ok": False, "error": "Permiso denegado"}, 403
                flash("Permiso denegado.", "danger")
                return redirect(url_for("pdv.dashboard"))
            return f(*args, **kwargs)
        return wrapper
    return deco


def role_required(role_name):
    def deco(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            profile = _current_profile()
            if profile.role != role_name and not profile.is_admin:
                flash("Permiso denegado.", "danger")
                return redirect(url_for("pdv.dashboard"))
            return f(*args, **kwargs)
        return wrapper
    return deco


def generate_csrf_token():
    if 'csrf_token' not in session:
        session['csrf_token'] = uuid.uuid4().hex
    return session['csrf_token']


def verify_csrf(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if request.method == 'POST':
            token = session.get('csrf_token')
            form_token = (
                request.form.get('csrf_token') or
                request.headers.get('X-CSRF-Token') or
                request.headers.get('X-CSRFToken')
            )
            if not form_token and request.is_json:
                json_data = request.get_json(silent=True) or {}
                form_token = json_data.get('csrf_token')

            if not token or not form_token or token != form_token:
                if request.path.startswith('/api/') or _wants_json():
                    return {"ok": False, "error": "CSRF token inválido"}, 403
                flash('Sesión expirada. Por favor intenta de nuevo.', 'warning')
                if 'user' not in session:
                    return redirect(url_for('pdv.login'))
                return redirect(url_for('pdv.dashboard'))
        return f(*args, **kwargs)
    return wrapper


def _flash_error(error, context):
    """Registra el error y lo muestra al usuario."""
    current_app.logger.warning("%s: %s", context, error.message)
    flash(error.message, "danger")


# ═══════════════════════════════════════════════════════════════════════════════
# AUTENTICACIÓN
# ═══════════════════════════════════════════════════════════════════════════════

def _start_session(payload):
    """Guarda el usuario y selecciona el tenant si tiene exactamente uno."""
    session.clear()
    session.permanent = True
    session["user"] = payload["user"]
    session["tokens"] = payload["tokens"]

    container = AppContainer(current_app.config, access_token=payload["tokens"]["access_token"])
    try:
        result = container.tenant_service.init_tenants(payload["user"]["user_id"])
    except PdvError as e:
        current_app.logger.warning("No fue posible cargar los tenants: %s", e.message)
        return
    if result["current"] is not None:
        session["tenant"] = result["current"].to_session()


@bp.before_app_request
def refresh_expired_session():
    """Renueva el token de acceso vencido antes de atender la request."""
    tokens = session.get("tokens")
    if "user" not in session or not tokens or not token_expired(tokens.get("access_token")):
        return None

    container = AppContainer(current_app.config)
    try:
        payload = container.auth_service.refresh_session(
            session["user"].get("user_id"), tokens.get("refresh_token")
        )
    except AuthenticationError as e:
        current_app.logger.warning("Sesión terminada al renovar: %s", e.message)
        session.clear()
        if request.path.startswith('/api/'):
            return {"ok": False, "error": e.message}, 401
        flash(e.message, "warning")
        return redirect(url_for("pdv.login"))
    except PdvError as e:
        current_app.logger.error("No fue posible renovar la sesión: %s", e.message)
        if request.path.startswith('/api/'):
            return {"ok": False, "error": e.message}, _error_status(e)
        flash(e.message, "danger")
        return None

    session["user"] = payload["user"]
    session["tokens"] = payload["tokens"]
    return None


@bp.route("/login", methods=["GET", "POST"])
@verify_csrf
def login():
    if request.method == "POST":
        email = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""
        try:
            payload = get_container().auth_service.login(email, password)
        except PdvError as e:
            _flash_error(e, "Inicio de sesión fallido")
            return render_template("login.html", email=email), 401
        _start_session(payload)
        flash(f"Bienvenido, {payload['user']['name']}.", "success")
        return redirect(url_for("pdv.dashboard"))
    if "user" in session:
        return redirect(url_for("pdv.dashboard"))
    return render_template("login.html")


@bp.route("/signup", methods=["GET", "POST"])
@verify_csrf
def signup():
    if request.method == "POST":
        form = request.form
        try:
            payload = get_container().auth_service.signup(
                form.get("email"),
                form.get("password") or "",
                form.get("name"),
                form.get("confirm_password") or "",
            )
        except PdvError as e:
            _flash_error(e, "Registro fallido")
            return render_template("signup.html", email=form.get("email"), name=form.get("name")), 400
        if payload is None:
            flash("Cuenta creada. Revise su email para confirmarla.", "info")
            return redirect(url_for("pdv.login"))
        _start_session(payload)
        flash("Cuenta creada.", "success")
        return redirect(url_for("pdv.dashboard"))
    return render_template("signup.html")


@bp.route("/logout")
@login_required
def logout():
    tokens = session.get("tokens") or {}
    get_container().auth_service.logout(tokens.get("access_token"))
    session.clear()
    flash("Sesión cerrada.", "info")
    return redirect(url_for("pdv.login"))


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL PRINCIPAL
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/")
@login_required
def dashboard():
    try:
        summary = get_container().report_service.dashboard_summary()
    except PdvError as e:
        _flash_error(e, "Error al cargar el panel")
        summary = None
    return render_template("dashboard.html", summary=summary)


@bp.route("/api/dashboard")
@login_required
def api_dashboard():
    summary = get_container().report_service.dashboard_summary()
    return {"ok": True, "summary": summary}


# ═══════════════════════════════════════════════════════════════════════════════
# PRODUCTOS
# ═══════════════════════════════════════════════════════════════════════════════

def _product_form():
    return {key: request.form.get(key, '') for key in
            ('code', 'name', 'barcode', 'price', 'stock', 'category', 'image_url')}


@bp.route("/products")
@login_required
def products():
    q = (request.args.get("q") or "").strip()
    service = get_container().product_service
    try:
        items = service.search_products(q) if q else service.get_all_products()
    except PdvError as e:
        _flash_error(e, "Error al cargar productos")
        items = []
    return render_template("products.html", products=items, q=q)


@bp.route("/products/new", methods=["GET", "POST"])
@login_required
@verify_csrf
@permission_required('manageProducts')
def product_new():
    if request.method == "POST":
        form = _product_form()
        try:
            product = get_container().product_service.create_product(form)
        except PdvError as e:
            _flash_error(e, "Error al crear producto")
            return render_template("product_form.html", product=form, is_new=True), 400
        flash(f"Producto {product.get('name', '')} creado.", "success")
        return redirect(url_for("pdv.products"))
    return render_template("product_form.html", product={}, is_new=True)


@bp.route("/products/<int:pid>/edit", methods=["GET", "POST"])
@login_required
@verify_csrf
@permission_required('manageProducts')
def product_edit(pid):
    service = get_container().product_service
    if request.method == "POST":
        form = {k: v for k, v in _product_form().items() if k in request.form}
        try:
            service.update_product(pid, form)
        except PdvError as e:
            _flash_error(e, f"Error al editar producto {pid}")
            return render_template("product_form.html", product={**form, 'id': pid}, is_new=False), 400
        flash("Producto actualizado.", "success")
        return redirect(url_for("pdv.products"))
    try:
        product = service.get_product(pid)
    except PdvError as e:
        _flash_error(e, f"Error al cargar producto {pid}")
        return redirect(url_for("pdv.products"))
    return render_template("product_form.html", product=product, is_new=False)


@bp.route("/products/<int:pid>/delete", methods=["POST"])
@login_required
@verify_csrf
@permission_required('manageProducts')
def product_delete(pid):
    try:
        get_container().product_service.delete_product(pid)
        flash("Producto eliminado.", "success")
    except PdvError as e:
        _flash_error(e, f"Error al eliminar producto {pid}")
    return redirect(url_for("pdv.products"))


@bp.route("/api/products/search")
@login_required
def api_product_search():
    """Búsqueda del punto de venta (la vista espera el debounce)."""
    term = request.args.get("q", "")
    results = get_container().product_service.search_products(term)
    return {"ok": True, "results": results}


# ═══════════════════════════════════════════════════════════════════════════════
# PUNTO DE VENTA
# ═══════════════════════════════════════════════════════════════════════════════

def _cart_response(result, success_message=None):
    if _wants_json():
        status = 200 if result.get('ok') else 400
        return result, status
    if result.get('ok'):
        if success_message:
            flash(success_message, "success")
    else:
        flash(result.get('error', 'Error en el carrito'), "warning")
    return redirect(url_for("pdv.pos"))


def _cart_payload():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


@bp.route("/pos")
@login_required
def pos():
    cart = get_container().cart_service.get_cart()
    return render_template(
        "pos.html",
        cart=cart,
        payment_methods=PAYMENT_METHODS,
        debounce_ms=current_app.config['SEARCH_DEBOUNCE_MS'],
    )


@bp.route("/pos/cart/add", methods=["POST"])
@login_required
@verify_csrf
def cart_add():
    data = _cart_payload()
    product_id = to_int(data.get("product_id"))
    if product_id is None:
        return _cart_response({'ok': False, 'error': 'Producto inválido'})
    try:
        quantity = CartService.parse_quantity(data.get("quantity", 1))
        result = get_container().cart_service.add_item(product_id, quantity)
    except PdvError as e:
        current_app.logger.warning("Error al agregar al carrito: %s", e.message)
        result = {'ok': False, 'error': e.message}
    return _cart_response(result, f"{result.get('name', 'Producto')} agregado al carrito.")


@bp.route("/pos/cart/update", methods=["POST"])
@login_required
@verify_csrf
def cart_update():
    data = _cart_payload()
    product_id = to_int(data.get("product_id"))
    if product_id is None:
        return _cart_response({'ok': False, 'error': 'Producto inválido'})
    try:
        quantity = CartService.parse_quantity(data.get("quantity"))
    except ValidationError as e:
        return _cart_response({'ok': False, 'error': e.message})
    return _cart_response(get_container().cart_service.update_quantity(product_id, quantity))


@bp.route("/pos/cart/remove", methods=["POST"])
@login_required
@verify_csrf
def cart_remove():
    product_id = to_int(_cart_payload().get("product_id"))
    if product_id is None:
        return _cart_response({'ok': False, 'error': 'Producto inválido'})
    return _cart_response(get_container().cart_service.remove_item(product_id))


@bp.route("/pos/cart/clear", methods=["POST"])
@login_required
@verify_csrf
def cart_clear():
    service = get_container().cart_service
    service.clear()
    return _cart_response({'ok': True, 'cart': service.get_cart()})


@bp.route("/pos/checkout", methods=["POST"])
@login_required
@verify_csrf
def checkout():
    """Finaliza la venta con el carrito de la sesión."""
    container = get_container()
    lines = container.cart_service.get_lines()
    result = container.sales_service.create_sale(
        lines,
        user_id=session["user"]["user_id"],
        payment_method=request.form.get("payment_method", ""),
        customer=request.form.get("customer"),
        observations=request.form.get("observations"),
    )
    if not result['ok']:
        current_app.logger.warning("Venta no registrada: %s", result['error'])
        flash(result['error'], "danger")
        return redirect(url_for("pdv.pos"))

    container.cart_service.clear()
    flash(f"Venta registrada: {format_money(result['total'])}", "success")
    return redirect(url_for("pdv.sale_detail", sale_id=result['sale']['id']))


# ═══════════════════════════════════════════════════════════════════════════════
# VENTAS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/sales")
@login_required
def sales():
    q = request.args.get("q", "")
    status = request.args.get("status") or None
    sort = request.args.get("sort") or "date"
    direction = request.args.get("dir") or "desc"
    service = get_container().sales_service
    try:
        all_sales = service.get_all_sales()
    except PdvError as e:
        _flash_error(e, "Error al cargar ventas")
        all_sales = []
    filtered = service.search_sales(q, status, sort, direction, sales=all_sales)
    return render_template(
        "sales.html",
        sales=filtered,
        stats=service.compute_stats(filtered),
        q=q, status=status, sort=sort, direction=direction,
        statuses=[s.value for s in SaleStatus],
    )


@bp.route("/sales/export")
@login_required
@permission_required('viewReports')
def sales_export():
    try:
        content = get_container().report_service.export_sales_csv()
    except PdvError as e:
        _flash_error(e, "Error al exportar ventas")
        return redirect(url_for("pdv.sales"))
    return Response(content, mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment;filename=ventas.csv'})


@bp.route("/sales/<sale_id>")
@login_required
def sale_detail(sale_id):
    try:
        sale = get_container().sales_service.get_sale(sale_id)
    except PdvError as e:
        _flash_error(e, f"Error al cargar la venta {sale_id}")
        return redirect(url_for("pdv.sales"))
    return render_template("sale_detail.html", sale=sale)


@bp.route("/sales/<sale_id>/cancel", methods=["POST"])
@login_required
@verify_csrf
@permission_required('manageSales')
def sale_cancel(sale_id):
    try:
        result = get_container().sales_service.cancel_sale(sale_id, session["user"]["email"])
    except PdvError as e:
        _flash_error(e, f"Error al anular la venta {sale_id}")
        return redirect(url_for("pdv.sale_detail", sale_id=sale_id))
    if result['ok']:
        flash("Venta anulada. Stock devuelto.", "success")
    else:
        flash(result['error'], "warning")
    return redirect(url_for("pdv.sale_detail", sale_id=sale_id))


# ═══════════════════════════════════════════════════════════════════════════════
# REPORTES
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/reports")
@login_required
@permission_required('viewReports')
def reports():
    period = request.args.get("period", "week")
    try:
        data = get_container().report_service.reports_overview(period)
    except PdvError as e:
        _flash_error(e, "Error al cargar reportes")
        data = None
    return render_template("reports.html", data=data, period=period)


@bp.route("/api/reports/<period>")
@login_required
@permission_required('viewReports')
def api_reports(period):
    return {"ok": True, "data": get_container().report_service.sales_by_period(period)}


# ═══════════════════════════════════════════════════════════════════════════════
# USUARIOS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/users")
@login_required
@permission_required('manageUsers')
def users():
    try:
        items = get_container().user_service.get_all_users()
    except PdvError as e:
        _flash_error(e, "Error al cargar usuarios")
        items = []
    return render_template("users.html", users=items,
                           roles=[r.value for r in UserRole], permission_keys=PERMISSION_KEYS)


@bp.route("/users/save", methods=["POST"])
@login_required
@verify_csrf
@permission_required('manageUsers')
def user_save():
    try:
        user = get_container().user_service.save_user(request.form)
        flash(f"Usuario {user.get('email', '')} guardado.", "success")
    except PdvError as e:
        _flash_error(e, "Error al guardar usuario")
    return redirect(url_for("pdv.users"))


@bp.route("/users/<user_id>/toggle", methods=["POST"])
@login_required
@verify_csrf
@permission_required('manageUsers')
def user_toggle(user_id):
    try:
        user = get_container().user_service.toggle_active(user_id)
        flash("Usuario activado." if user.get('active') else "Usuario desactivado.", "success")
    except PdvError as e:
        _flash_error(e, f"Error al cambiar estado de {user_id}")
    return redirect(url_for("pdv.users"))


@bp.route("/users/<user_id>/delete", methods=["POST"])
@login_required
@verify_csrf
@permission_required('manageUsers')
def user_delete(user_id):
    try:
        get_container().user_service.delete_user(user_id, session["user"]["user_id"])
        flash("Usuario eliminado.", "success")
    except PdvError as e:
        _flash_error(e, f"Error al eliminar usuario {user_id}")
    return redirect(url_for("pdv.users"))


# ═══════════════════════════════════════════════════════════════════════════════
# TENANTS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/tenants")
@login_required
def tenants():
    try:
        items = get_container().tenant_service.fetch_tenants(session["user"]["user_id"])
    except PdvError as e:
        _flash_error(e, "Error al cargar tenants")
        items = []
    return render_template("tenants.html", tenants=items)


@bp.route("/tenants/new", methods=["POST"])
@login_required
@verify_csrf
@role_required('admin')
def tenant_new():
    form = request.form
    try:
        tenant = get_container().tenant_service.create_tenant(
            session["user"]["user_id"],
            form.get("name"),
            form.get("supabase_url"),
            form.get("supabase_anon_key"),
            form.get("supabase_service_key"),
        )
        flash(f"Tenant {tenant.name} creado.", "success")
    except PdvError as e:
        _flash_error(e, "Error al crear tenant")
    return redirect(url_for("pdv.tenants"))


@bp.route("/tenants/<tenant_id>/switch", methods=["POST"])
@login_required
@verify_csrf
def tenant_switch(tenant_id):
    try:
        tenant = get_container().tenant_service.switch_tenant(tenant_id, session["user"]["user_id"])
    except PdvError as e:
        _flash_error(e, f"Error al cambiar al tenant {tenant_id}")
        return redirect(url_for("pdv.tenants"))
    session["tenant"] = tenant.to_session()
    session.pop(CartService.SESSION_KEY, None)
    flash(f"Trabajando en {tenant.name}.", "success")
    return redirect(url_for("pdv.dashboard"))


@bp.route("/tenants/clear", methods=["POST"])
@login_required
@verify_csrf
def tenant_clear():
    session.pop("tenant", None)
    session.pop(CartService.SESSION_KEY, None)
    flash("Trabajando en el proyecto principal.", "info")
    return redirect(url_for("pdv.dashboard"))


# ═══════════════════════════════════════════════════════════════════════════════
# TIEMPO REAL
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route("/api/realtime")
@login_required
def api_realtime():
    """Server-sent events: avisa qué vistas deben volver a pedir sus datos."""
    if not current_app.config.get('REALTIME_ENABLED'):
        return {"ok": False, "error": "Tiempo real desactivado"}, 404

    container = get_container()
    hub = current_app.extensions['realtime_hub']
    project = container.data_project_url
    if not project or not container.data_project_key:
        raise BackendError("El backend no está configurado (URL o clave ausente)")
    hub.ensure_listener(project, container.data_project_key)

    stream = hub.stream(project, max_seconds=current_app.config.get('REALTIME_STREAM_SECONDS', 300))
    response = Response(stream_with_context(stream), mimetype='text/event-stream')
    response.headers['Cache-Control'] = 'no-cache'
    response.headers['X-Accel-Buffering'] = 'no'
    return response


# ═══════════════════════════════════════════════════════════════════════════════
# FÁBRICA DE LA APLICACIÓN
# ═══════════════════════════════════════════════════════════════════════════════

def create_app(overrides=None):
    """
    Crea la aplicación Flask.

    Args:
        overrides: Valores de configuración que reemplazan al entorno
    """
    app = Flask(__name__)
    app.config.update(load_config(overrides))
    app.extensions['realtime_hub'] = RealtimeHub()

    # Mide rendimiento de rutas y funciones. Logs en /logs/
    init_profiling(app)

    app.register_blueprint(bp)

    @app.context_processor
    def inject_globals():
        profile = _current_profile() if 'user' in session else None
        return {
            'csrf_token': generate_csrf_token(),
            'current_user': session.get('user'),
            'current_tenant': session.get('tenant'),
            'can': (lambda perm: profile is not None and profile.can(perm)),
            'is_admin': profile is not None and profile.is_admin,
            'format_money': format_money,
            'realtime_enabled': app.config.get('REALTIME_ENABLED', False),
        }

    @app.errorhandler(PdvError)
    def handle_pdv_error(error):
        app.logger.error("%s en %s: %s", type(error).__name__, request.path, error.message)
        if request.path.startswith('/api/'):
            return {"ok": False, "error": error.message}, _error_status(error)
        flash(error.message, "danger")
        if 'user' not in session:
            return redirect(url_for('pdv.login'))
        return redirect(url_for('pdv.dashboard'))

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'
        response.headers['Permissions-Policy'] = 'geolocation=(), microphone=()'
        # HSTS solo con HTTPS real
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    return app
