"""
Receipt service.
Renders the printed receipt of a finalized sale. Amounts are taken from the
sale as persisted; nothing is recomputed here.

The layout (line order, labels, separators) is parsed by existing tooling
and must not change.
"""
from typing import Any, List, Optional

from farmacia.stores.records import Customer, Sale
from farmacia.utils.money import DEFAULT_TAX_RATE, format_money, format_rate

DOUBLE_RULE = '═' * 35
SINGLE_RULE = '─' * 35
RECEIPT_DATE_FORMAT = '%d/%m/%Y, %H:%M:%S'
LABEL_WIDTH = 17

DEFAULT_BUSINESS_NAME = 'FARMACIA SALUD'
DEFAULT_CUSTOMER_NAME = 'Cliente General'
DEFAULT_CUSTOMER_DOC = '00000000'
FOOTER = '        ¡GRACIAS POR SU COMPRA!'


def _centered(text: str) -> str:
    return text.center(len(DOUBLE_RULE)).rstrip()


def _total_line(label: str, amount: Any, prefix: str) -> str:
    return f'{label:<{LABEL_WIDTH}}{format_money(amount, prefix)}'


def render_receipt(
    sale: Sale,
    customer: Optional[Customer] = None,
    business_name: str = DEFAULT_BUSINESS_NAME,
    tax_rate: Any = DEFAULT_TAX_RATE,
    tax_label: str = 'IGV',
    currency_prefix: str = 'S/',
    default_customer_name: str = DEFAULT_CUSTOMER_NAME,
    default_customer_doc: str = DEFAULT_CUSTOMER_DOC
) -> str:
    """
    Render the text receipt for a finalized sale.

    The tax line shows the rate stored on the sale; tax_rate is only used for
    sales that carry none.
    """
    customer = customer or sale.customer
    rate = sale.tax_rate if sale.tax_rate is not None else tax_rate
    customer_name = customer.name if customer else default_customer_name
    customer_doc = (customer.document_number if customer else None) or default_customer_doc

    lines: List[str] = [
        DOUBLE_RULE,
        _centered(business_name),
        DOUBLE_RULE,
        f'{sale.receipt_type.value}: {sale.sale_number}',
        f'Fecha: {sale.created_at.strftime(RECEIPT_DATE_FORMAT)}',
        SINGLE_RULE,
        f'Cliente: {customer_name}',
        f'Doc: {customer_doc}',
        SINGLE_RULE,
        'PRODUCTOS:',
    ]

    for item in sale.items:
        lines.append(item.product_name)
        lines.append(
            f'  {item.quantity} x {format_money(item.unit_price, currency_prefix)}'
            f' = {format_money(item.subtotal, currency_prefix)}'
        )

    lines.extend([
        SINGLE_RULE,
        _total_line('Subtotal:', sale.subtotal, currency_prefix),
        _total_line(f'{tax_label} ({format_rate(rate)}):', sale.tax, currency_prefix),
        _total_line('TOTAL:', sale.total, currency_prefix),
        SINGLE_RULE,
        f'Pago: {sale.payment_method.value}',
        SINGLE_RULE,
        FOOTER,
        DOUBLE_RULE,
    ])
    return '\n'.join(lines)
