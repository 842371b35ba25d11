"""Models package - exports all SQLAlchemy models."""
from farmacia.models.product import Product
from farmacia.models.customer import Customer
from farmacia.models.sale import Sale
from farmacia.models.sale_item import SaleItem
from farmacia.models.inventory_movement import InventoryMovement
from farmacia.models.sale_sequence import SaleSequence

__all__ = [
    'Product', 'Customer', 'Sale', 'SaleItem', 'InventoryMovement', 'SaleSequence',
]
