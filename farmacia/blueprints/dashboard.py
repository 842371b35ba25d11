"""
Dashboard blueprint.
Key figures for today plus the top products and daily sales reports.
"""

from flask import Blueprint, current_app, jsonify, request

from farmacia.services import dashboard_service
from farmacia.stores import get_store
from farmacia.utils.formatters import money_str, top_product_to_dict


dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')


@dashboard_bp.route('/stats')
def stats():
    """
    Dashboard figures:
    - Ventas de hoy (monto y cantidad)
    - Productos activos
    - Productos con stock bajo
    - Clientes registrados
    """
    data = dashboard_service.dashboard_stats(get_store())
    return jsonify({'status': 'success', 'stats': data.to_dict()})


@dashboard_bp.route('/top-products')
def top_products():
    limit = request.args.get('limit', current_app.config.get('TOP_PRODUCTS_LIMIT', 10), type=int)
    products = dashboard_service.top_products(get_store(), limit)
    return jsonify({
        'status': 'success',
        'products': [top_product_to_dict(p) for p in products]
    })


@dashboard_bp.route('/sales-by-day')
def sales_by_day():
    days = request.args.get('days', current_app.config.get('SALES_BY_DAY_WINDOW', 7), type=int)
    days = max(1, min(days, 90))
    rows = dashboard_service.sales_by_day(get_store(), days)
    return jsonify({
        'status': 'success',
        'days': [
            {'date': row.day.isoformat(), 'revenue': money_str(row.revenue), 'transactions': row.transactions}
            for row in rows
        ]
    })
