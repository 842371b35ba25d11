"""Main blueprint with health check endpoints."""
from flask import Blueprint, current_app, jsonify

from farmacia.stores import get_store

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates the store.

    Returns:
        200: Healthy (store answers queries)
        500: Unhealthy (store error)
    """
    store = get_store()
    try:
        active_products = store.count_active_products()
        return jsonify({
            'status': 'healthy',
            'store': store.backend_name,
            'active_products': active_products,
            'message': 'Store connection successful'
        }), 200

    except Exception as e:
        current_app.logger.error(f"Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'store': store.backend_name,
            'error': str(e),
            'message': 'Failed to query the store'
        }), 500
