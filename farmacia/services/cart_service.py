"""
Cart service.
In-memory cart for one checkout session. Lines are unique by product and keep
the price seen when the product was added.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from farmacia.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError
from farmacia.stores.records import Product
from farmacia.utils.money import DEFAULT_TAX_RATE, compute_totals, round2, to_decimal


def _parse_quantity(qty: Any) -> int:
    """Quantities are whole units."""
    if isinstance(qty, bool):
        raise BusinessLogicError('Cantidad inválida')
    try:
        value = Decimal(str(qty).strip())
    except (InvalidOperation, ValueError):
        raise BusinessLogicError('Cantidad inválida')
    if not value.is_finite():
        raise BusinessLogicError('Cantidad inválida')
    if value != value.to_integral_value():
        raise BusinessLogicError('La cantidad debe ser un número entero')
    return int(value)


@dataclass
class CartLine:
    product_id: int
    code: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'code': self.code,
            'name': self.name,
            'unit_price': str(self.unit_price),
            'quantity': self.quantity
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartLine':
        return cls(
            product_id=int(data['product_id']),
            code=data.get('code', ''),
            name=data['name'],
            unit_price=round2(data['unit_price']),
            quantity=int(data['quantity'])
        )


class Cart:
    """
    Ordered collection of CartLine, unique by product id.

    Every mutation validates against the stock of the Product passed in and
    leaves the cart unchanged when it fails.
    """

    def __init__(self, lines: Optional[List[CartLine]] = None):
        self._lines: List[CartLine] = list(lines or [])

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(self.lines)

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        """Total units across all lines."""
        return sum(line.quantity for line in self._lines)

    def get_line(self, product_id: int) -> Optional[CartLine]:
        for line in self._lines:
            if line.product_id == product_id:
                return line
        return None

    def add_line(self, product: Product, qty: Any = 1) -> CartLine:
        """
        Add qty units of a product, merging with an existing line.

        Raises:
            BusinessLogicError: qty is not a positive whole number
            NotFoundError: product is inactive
            InsufficientStockError: resulting quantity exceeds product.stock
        """
        qty = _parse_quantity(qty)
        if qty <= 0:
            raise BusinessLogicError('La cantidad debe ser mayor a 0')
        if not product.is_active:
            raise NotFoundError(f'El producto "{product.name}" no está activo')

        line = self.get_line(product.id)
        current = line.quantity if line else 0
        new_qty = current + qty
        if new_qty > product.stock:
            raise InsufficientStockError(product.id, product.name, new_qty, product.stock)

        if line:
            line.quantity = new_qty
            return line

        line = CartLine(
            product_id=product.id,
            code=product.code,
            name=product.name,
            unit_price=round2(product.price),
            quantity=new_qty
        )
        self._lines.append(line)
        return line

    def set_quantity(self, product: Any, qty: Any, stock: Optional[int] = None) -> Optional[CartLine]:
        """
        Set a line's quantity; qty <= 0 removes the line.

        `product` is a Product (its stock is used) or a product id together
        with the live `stock`.
        """
        if isinstance(product, Product):
            product_id, stock, name = product.id, product.stock, product.name
        else:
            product_id, name = int(product), None
            if stock is None:
                raise ValueError('stock es requerido cuando se pasa un id de producto')

        line = self.get_line(product_id)
        if line is None:
            raise NotFoundError(f'El producto #{product_id} no está en el carrito')

        qty = _parse_quantity(qty)
        if qty <= 0:
            self.remove_line(product_id)
            return None
        if qty > stock:
            raise InsufficientStockError(product_id, name or line.name, qty, stock)

        line.quantity = qty
        return line

    def remove_line(self, product_id: int) -> bool:
        line = self.get_line(product_id)
        if line is None:
            return False
        self._lines.remove(line)
        return True

    def clear(self) -> None:
        self._lines = []

    def totals(self, rate: Any = DEFAULT_TAX_RATE) -> Tuple[Decimal, Decimal, Decimal]:
        """(subtotal, tax, total); pure."""
        return compute_totals((line.line_total for line in self._lines), to_decimal(rate))

    def to_dict(self) -> Dict[str, Any]:
        return {'lines': [line.to_dict() for line in self._lines]}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Cart':
        if not data:
            return cls()
        return cls([CartLine.from_dict(line) for line in data.get('lines', [])])

    def summary(self, rate: Any = DEFAULT_TAX_RATE) -> Dict[str, Any]:
        """JSON-friendly view of the cart with totals."""
        subtotal, tax, total = self.totals(rate)
        return {
            'lines': [
                dict(line.to_dict(), line_total=str(round2(line.line_total)))
                for line in self._lines
            ],
            'item_count': self.item_count,
            'subtotal': str(subtotal),
            'tax': str(tax),
            'total': str(total)
        }
