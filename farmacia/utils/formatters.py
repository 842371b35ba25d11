"""
Utilidades de formateo para respuestas JSON.
Convierte los registros del dominio (Product, Sale, ...) a diccionarios
serializables: montos como string con 2 decimales, fechas en ISO 8601.
"""
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from farmacia.stores.records import Customer, InventoryMovement, Product, Sale, SaleItem, TopProduct
from farmacia.utils.money import round2


def money_str(value: Optional[Decimal]) -> Optional[str]:
    """
    Formatea un monto para JSON.

    Examples:
        money_str(Decimal('8.85')) -> "8.85"
        money_str(Decimal('7.5')) -> "7.50"
        money_str(None) -> None
    """
    if value is None:
        return None
    return str(round2(value))


def iso(value: Optional[date]) -> Optional[str]:
    """Fecha o fecha-hora en ISO 8601 (None se mantiene)."""
    if value is None:
        return None
    return value.isoformat()


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        'id': product.id,
        'code': product.code,
        'name': product.name,
        'price': money_str(product.price),
        'cost_price': money_str(product.cost_price),
        'stock': product.stock,
        'min_stock': product.min_stock,
        'is_active': product.is_active,
        'is_low_stock': product.is_low_stock,
        'category': product.category,
        'laboratory': product.laboratory,
        'expiry_date': iso(product.expiry_date)
    }


def customer_to_dict(customer: Optional[Customer]) -> Optional[Dict[str, Any]]:
    if customer is None:
        return None
    return {
        'id': customer.id,
        'name': customer.name,
        'document_type': customer.document_type.value,
        'document_number': customer.document_number,
        'phone': customer.phone,
        'email': customer.email
    }


def sale_item_to_dict(item: SaleItem) -> Dict[str, Any]:
    return {
        'product_id': item.product_id,
        'product_code': item.product_code,
        'product_name': item.product_name,
        'quantity': item.quantity,
        'unit_price': money_str(item.unit_price),
        'subtotal': money_str(item.subtotal)
    }


def sale_to_dict(sale: Sale, with_items: bool = True) -> Dict[str, Any]:
    """Venta finalizada; los montos son los persistidos, nunca recalculados."""
    data = {
        'id': sale.id,
        'sale_number': sale.sale_number,
        'receipt_type': sale.receipt_type.value,
        'payment_method': sale.payment_method.value,
        'status': sale.status.value,
        'subtotal': money_str(sale.subtotal),
        'tax': money_str(sale.tax),
        'total': money_str(sale.total),
        'tax_rate': str(sale.tax_rate) if sale.tax_rate is not None else None,
        'created_at': iso(sale.created_at),
        'customer': customer_to_dict(sale.customer)
    }
    if with_items:
        data['items'] = [sale_item_to_dict(item) for item in sale.items]
    return data


def movement_to_dict(movement: InventoryMovement) -> Dict[str, Any]:
    data = asdict(movement)
    data['movement_type'] = movement.movement_type.value
    data['reference_type'] = movement.reference_type.value
    data['created_at'] = iso(movement.created_at)
    return data


def top_product_to_dict(top: TopProduct) -> Dict[str, Any]:
    return {
        'product_id': top.product_id,
        'code': top.code,
        'name': top.name,
        'total_sold': top.total_sold,
        'total_revenue': money_str(top.total_revenue)
    }
