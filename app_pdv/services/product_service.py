# ==============================================================================
# SERVICIO DE PRODUCTOS
# ==============================================================================
# Catálogo de productos: CRUD sobre la tabla products, búsqueda remota y
# verificación remota de stock. No hay caché: cada llamada va al backend.
# ==============================================================================

import logging
from typing import Any, Dict, List

from app_pdv.errors import NotFoundError, ValidationError
from app_pdv.models import Product, utc_now_iso
from app_pdv.performance_logger import profile_function
from app_pdv.repositories.interfaces import IProductRepository

logger = logging.getLogger(__name__)

# Columnas que un formulario puede modificar
EDITABLE_FIELDS = frozenset(['code', 'name', 'barcode', 'price', 'stock', 'category', 'image_url'])
REQUIRED_TEXT_FIELDS = frozenset(['code', 'name', 'barcode', 'category'])


class ProductService:
    """
    Servicio para gestión del catálogo.

    Responsabilidades:
    - Validar datos de productos antes de enviarlos al backend
    - Búsqueda por término libre (procedimiento remoto)
    - Consulta de disponibilidad de stock (procedimiento remoto)
    """

    def __init__(self, product_repo: IProductRepository, low_stock_threshold: int = 5):
        """
        Args:
            product_repo: Repositorio de productos (del tenant activo)
            low_stock_threshold: Umbral para considerar stock bajo
        """
        self.product_repo = product_repo
        self.low_stock_threshold = low_stock_threshold

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_all_products(self) -> List[Dict[str, Any]]:
        return self.product_repo.list_products()

    def get_product(self, pid: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Si el producto no existe
        """
        product = self.product_repo.get_product(pid)
        if not product:
            raise NotFoundError(f"Producto {pid} no encontrado")
        return product

    def low_stock(self, threshold: int = None) -> List[Dict[str, Any]]:
        """Productos con stock menor o igual al umbral."""
        if threshold is None:
            threshold = self.low_stock_threshold
        return self.product_repo.list_low_stock(threshold)

    @profile_function(name="Buscar productos")
    def search_products(self, term: str) -> List[Dict[str, Any]]:
        """
        Búsqueda libre. Un término vacío o de solo espacios no consulta
        el backend y retorna lista vacía.

        Args:
            term: Nombre, código o código de barras (se envía tal cual)
        """
        if term is None or not term.strip():
            return []
        return self.product_repo.search(term)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Crea un producto.

        Args:
            data: Campos del formulario

        Returns:
            Fila creada

        Raises:
            ValidationError: Campos obligatorios ausentes o valores inválidos
        """
        try:
            product = Product.from_dict(data)
        except (TypeError, ValueError):
            raise ValidationError("Precio y stock deben ser numéricos")

        errors = product.validate()
        if errors:
            raise ValidationError('; '.join(errors))

        row = product.to_row()
        row['created_at'] = utc_now_iso()
        created = self.product_repo.create_product(row)
        logger.info("Producto creado: %s (%s)", product.name, product.code)
        return created or row

    def update_product(self, pid: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Actualización parcial: solo se envían los campos recibidos.

        Raises:
            ValidationError: Valores inválidos
            NotFoundError: Si el producto no existe
        """
        updates = self._clean_updates(data)
        if not updates:
            raise ValidationError("No hay cambios para guardar")

        updates['updated_at'] = utc_now_iso()
        updated = self.product_repo.update_product(pid, updates)
        if not updated:
            raise NotFoundError(f"Producto {pid} no encontrado")
        return updated

    def delete_product(self, pid: int) -> None:
        self.product_repo.delete_product(pid)
        logger.info("Producto %s eliminado", pid)

    def _clean_updates(self, data: Dict[str, Any]) -> Dict[str, Any]:
        updates = {}
        for key, value in data.items():
            if key not in EDITABLE_FIELDS:
                continue
            if key in REQUIRED_TEXT_FIELDS:
                value = (value or '').strip()
                if not value:
                    raise ValidationError(f"El campo {key} no puede quedar vacío")
            elif key == 'price':
                try:
                    value = round(float(value), 2)
                except (TypeError, ValueError):
                    raise ValidationError("El precio debe ser numérico")
                if value < 0:
                    raise ValidationError("El precio no puede ser negativo")
            elif key == 'stock':
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ValidationError("El stock debe ser un número entero")
                if value < 0:
                    raise ValidationError("El stock no puede ser negativo")
            elif key == 'image_url':
                value = value or None
            updates[key] = value
        return updates
