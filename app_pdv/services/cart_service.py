# ==============================================================================
# SERVICIO DE CARRITO
# ==============================================================================
# Carrito del punto de venta. Se guarda en la sesión de Flask (estado del
# cliente); el precio y el nombre siempre se toman del backend al agregar.
# ==============================================================================

from typing import Any, Dict, List

from flask import session

from app_pdv.errors import ValidationError
from app_pdv.models import CartItem
from app_pdv.services.product_service import ProductService


class CartService:
    """
    Servicio para gestión del carrito.

    Responsabilidades:
    - Agregar/quitar líneas (una línea por producto)
    - Cambiar cantidades
    - Calcular totales

    El carrito se almacena en session['cart'].
    """

    SESSION_KEY = 'cart'

    def __init__(self, product_service: ProductService):
        self.product_service = product_service

    def _get_cart(self) -> List[Dict[str, Any]]:
        return session.get(self.SESSION_KEY, [])

    def _save_cart(self, cart: List[Dict[str, Any]]) -> None:
        session[self.SESSION_KEY] = cart
        session.modified = True

    def get_lines(self) -> List[CartItem]:
        """Líneas del carrito como entidades."""
        return [CartItem.from_dict(item) for item in self._get_cart()]

    def get_cart(self) -> Dict[str, Any]:
        """
        Carrito con totales calculados.

        Returns:
            Dict con items, item_count (suma de cantidades) y total
        """
        lines = self.get_lines()
        return {
            'items': [line.to_dict() for line in lines],
            'item_count': sum(line.quantity for line in lines),
            'total': round(sum(line.subtotal for line in lines), 2),
        }

    def add_item(self, product_id: int, quantity: int) -> Dict[str, Any]:
        """
        Agrega un producto. Si ya está en el carrito, suma la cantidad.

        Returns:
            Dict con ok, error o el carrito actualizado
        """
        if quantity is None or quantity <= 0:
            return {'ok': False, 'error': 'La cantidad debe ser mayor que cero'}

        product = self.product_service.get_product(product_id)
        cart = self._get_cart()

        for item in cart:
            if item['product_id'] == product['id']:
                line = CartItem.from_dict(item)
                line.quantity += quantity
                item.update(line.to_dict())
                break
        else:
            line = CartItem(
                product_id=product['id'],
                name=product.get('name', ''),
                code=product.get('code', ''),
                quantity=quantity,
                price=float(product.get('price') or 0),
            )
            cart.append(line.to_dict())

        self._save_cart(cart)
        return {'ok': True, 'name': product.get('name', ''), 'cart': self.get_cart()}

    def update_quantity(self, product_id: int, quantity: int) -> Dict[str, Any]:
        """Cambia la cantidad de una línea. Cantidades <= 0 se ignoran."""
        if quantity is None or quantity <= 0:
            return {'ok': False, 'error': 'La cantidad debe ser mayor que cero'}

        cart = self._get_cart()
        for item in cart:
            if item['product_id'] == product_id:
                line = CartItem.from_dict(item)
                line.quantity = quantity
                item.update(line.to_dict())
                self._save_cart(cart)
                return {'ok': True, 'cart': self.get_cart()}

        return {'ok': False, 'error': 'El producto no está en el carrito'}

    def remove_item(self, product_id: int) -> Dict[str, Any]:
        cart = [item for item in self._get_cart() if item['product_id'] != product_id]
        self._save_cart(cart)
        return {'ok': True, 'cart': self.get_cart()}

    def clear(self) -> None:
        session.pop(self.SESSION_KEY, None)

    @staticmethod
    def parse_quantity(raw: Any) -> int:
        """
        Convierte la cantidad de un formulario.

        Raises:
            ValidationError: Si no es un entero
        """
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValidationError("Cantidad inválida")
