"""Catalog blueprint for product management (inventory screen)."""
from flask import Blueprint, current_app, jsonify, request

from farmacia.services import catalog_service, dashboard_service
from farmacia.stores import get_store
from farmacia.utils.formatters import movement_to_dict, product_to_dict

catalog_bp = Blueprint('catalog', __name__, url_prefix='/catalog')


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@catalog_bp.route('/products', methods=['GET'])
def products_list():
    """
    List active products in catalog order.

    Query params:
        q: optional code/name filter
        limit: max rows (default 200)
    """
    query = request.args.get('q', '').strip()
    limit = request.args.get('limit', 200, type=int)
    products = catalog_service.search_products(get_store(), query, limit=limit)
    return jsonify({
        'status': 'success',
        'count': len(products),
        'products': [product_to_dict(p) for p in products]
    })


@catalog_bp.route('/products', methods=['POST'])
def product_create():
    product = catalog_service.create_product(get_store(), _payload())
    current_app.logger.info(f"[catalog] created product_id={product.id} code={product.code}")
    return jsonify({'status': 'success', 'product': product_to_dict(product)}), 201


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
def product_detail(product_id: int):
    store = get_store()
    product = catalog_service.get_product(store, product_id)
    movements = store.list_movements(product_id)
    return jsonify({
        'status': 'success',
        'product': product_to_dict(product),
        'movements': [movement_to_dict(m) for m in movements]
    })


@catalog_bp.route('/products/<int:product_id>', methods=['PUT'])
def product_update(product_id: int):
    product = catalog_service.update_product(get_store(), product_id, _payload())
    return jsonify({'status': 'success', 'product': product_to_dict(product)})


@catalog_bp.route('/products/<int:product_id>/deactivate', methods=['POST'])
def product_deactivate(product_id: int):
    product = catalog_service.deactivate_product(get_store(), product_id)
    return jsonify({'status': 'success', 'product': product_to_dict(product)})


@catalog_bp.route('/products/<int:product_id>/stock', methods=['POST'])
def product_adjust_stock(product_id: int):
    """
    Manual stock correction.

    Body: stock (new value), optional expected_stock (value shown to the
    operator; a mismatch returns 409) and notes.
    """
    payload = _payload()
    store = get_store()
    movement = catalog_service.adjust_stock(
        store,
        product_id,
        payload.get('stock'),
        expected_stock=payload.get('expected_stock'),
        notes=payload.get('notes')
    )
    product = catalog_service.get_product(store, product_id)
    return jsonify({
        'status': 'success',
        'product': product_to_dict(product),
        'movement': movement_to_dict(movement)
    })


@catalog_bp.route('/low-stock', methods=['GET'])
def low_stock():
    products = dashboard_service.low_stock(get_store())
    return jsonify({
        'status': 'success',
        'count': len(products),
        'products': [product_to_dict(p) for p in products]
    })
