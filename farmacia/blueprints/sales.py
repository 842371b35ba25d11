"""Sales blueprint for POS cart management and checkout."""
from flask import Blueprint, Response, current_app, jsonify, request, session

from farmacia.exceptions import BusinessLogicError, NotFoundError
from farmacia.services import catalog_service, dashboard_service
from farmacia.services.cart_service import Cart
from farmacia.services.customer_service import CustomerInput
from farmacia.services.receipt_service import render_receipt
from farmacia.services.sales_service import finalize_sale
from farmacia.stores import get_store
from farmacia.utils.formatters import money_str, product_to_dict, sale_to_dict
from farmacia.utils.money import to_decimal

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')

CART_SESSION_KEY = 'cart'


def get_cart() -> Cart:
    """Cart of the current session."""
    return Cart.from_dict(session.get(CART_SESSION_KEY))


def save_cart(cart: Cart) -> None:
    session[CART_SESSION_KEY] = cart.to_dict()
    session.modified = True


def _tax_rate():
    return to_decimal(current_app.config.get('TAX_RATE', '0.18'))


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _product_id(payload: dict) -> int:
    product_id = payload.get('product_id')
    if product_id in (None, ''):
        raise BusinessLogicError('Falta el ID del producto')
    try:
        return int(product_id)
    except (ValueError, TypeError):
        raise BusinessLogicError('Datos inválidos: product_id no es numérico')


def _cart_response(cart: Cart, status_code: int = 200, **extra):
    body = {'status': 'success', 'cart': cart.summary(_tax_rate())}
    body.update(extra)
    return jsonify(body), status_code


@sales_bp.route('/products/search')
def product_search():
    """Active products matching ?q= by code or name."""
    query = request.args.get('q', '').strip()
    products = catalog_service.search_products(get_store(), query)
    return jsonify({
        'status': 'success',
        'query': query,
        'products': [product_to_dict(p) for p in products]
    })


@sales_bp.route('/scan', methods=['POST'])
def scan():
    """Resolve a scanned code or typed name and add one unit to the cart."""
    payload = _payload()
    token = str(payload.get('token') or payload.get('code') or '')

    product = catalog_service.find_sellable(get_store(), token)
    cart = get_cart()
    cart.add_line(product, 1)
    save_cart(cart)

    current_app.logger.info(f"[cart_scan] token='{token}' -> product_id={product.id}")
    return _cart_response(cart, product=product_to_dict(product))


@sales_bp.route('/cart')
def cart_view():
    return _cart_response(get_cart())


@sales_bp.route('/cart/add', methods=['POST'])
def cart_add():
    """Add qty units of a product (merges with an existing line)."""
    payload = _payload()
    product_id = _product_id(payload)
    qty = payload.get('qty', 1)

    product = catalog_service.get_product(get_store(), product_id)
    cart = get_cart()
    cart.add_line(product, qty)
    save_cart(cart)

    current_app.logger.info(f"[cart_add] product_id={product_id}, qty={qty}, cart_size={len(cart)}")
    return _cart_response(cart)


@sales_bp.route('/cart/update', methods=['POST'])
def cart_update():
    """Set a line's quantity against live stock; qty <= 0 removes the line."""
    payload = _payload()
    product_id = _product_id(payload)
    qty = payload.get('qty')
    if qty in (None, ''):
        raise BusinessLogicError('Falta la cantidad')

    product = catalog_service.get_product(get_store(), product_id)
    cart = get_cart()
    cart.set_quantity(product, qty)
    save_cart(cart)

    current_app.logger.info(f"[cart_update] product_id={product_id}, qty={qty}")
    return _cart_response(cart)


@sales_bp.route('/cart/remove', methods=['POST'])
def cart_remove():
    product_id = _product_id(_payload())
    cart = get_cart()
    if cart.remove_line(product_id):
        save_cart(cart)
    return _cart_response(cart)


@sales_bp.route('/cart/clear', methods=['POST'])
def cart_clear():
    cart = get_cart()
    cart.clear()
    save_cart(cart)
    return _cart_response(cart)


@sales_bp.route('/checkout', methods=['POST'])
def checkout():
    """
    Finalize the session cart into a sale.

    Body: receipt_type, payment_method and an optional customer object
    (document_number, name, document_type). The session cart is cleared only
    when the sale was committed.
    """
    payload = _payload()
    cart = get_cart()

    customer_data = payload.get('customer')
    if customer_data is None and payload.get('document_number'):
        customer_data = {
            'document_number': payload.get('document_number'),
            'name': payload.get('customer_name'),
            'document_type': payload.get('document_type')
        }
    if customer_data and not isinstance(customer_data, dict):
        raise BusinessLogicError('Datos de cliente inválidos')
    customer_input = CustomerInput.from_dict(customer_data) if customer_data else None

    sale = finalize_sale(
        get_store(),
        cart,
        customer_input=customer_input,
        receipt_type=payload.get('receipt_type') or 'BOLETA',
        payment_method=payload.get('payment_method') or 'EFECTIVO',
        tax_rate=_tax_rate()
    )
    save_cart(cart)

    return jsonify({'status': 'success', 'sale': sale_to_dict(sale)}), 201


@sales_bp.route('/today')
def today():
    """Sales created today, newest first."""
    sales = dashboard_service.today_sales(get_store())
    revenue = sum((sale.total for sale in sales), to_decimal(0))
    return jsonify({
        'status': 'success',
        'count': len(sales),
        'revenue': money_str(revenue),
        'sales': [sale_to_dict(sale, with_items=False) for sale in sales]
    })


def _get_sale(sale_id: int):
    sale = get_store().find_sale(sale_id)
    if sale is None:
        raise NotFoundError(f'Venta #{sale_id} no encontrada')
    return sale


@sales_bp.route('/<int:sale_id>')
def sale_detail(sale_id: int):
    return jsonify({'status': 'success', 'sale': sale_to_dict(_get_sale(sale_id))})


@sales_bp.route('/<int:sale_id>/receipt')
def sale_receipt(sale_id: int):
    """Printable receipt as plain text."""
    sale = _get_sale(sale_id)
    config = current_app.config
    text = render_receipt(
        sale,
        business_name=config.get('BUSINESS_NAME', 'FARMACIA SALUD'),
        tax_rate=_tax_rate(),
        tax_label=config.get('TAX_LABEL', 'IGV'),
        currency_prefix=config.get('CURRENCY_PREFIX', 'S/'),
        default_customer_name=config.get('DEFAULT_CUSTOMER_NAME', 'Cliente General'),
        default_customer_doc=config.get('DEFAULT_CUSTOMER_DOC', '00000000')
    )
    return Response(text, mimetype='text/plain')
