"""Flask application factory."""
import os

from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError, CSRFProtect


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'La sesión ha expirado. Recarga la página.'}), 400

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from farmacia.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Persistence backend (memory or sql)
    from farmacia.stores import init_store
    init_store(app)

    # Error Handlers
    from farmacia.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"PosError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}", exc_info=True)
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from farmacia.blueprints.main import main_bp
    from farmacia.blueprints.sales import sales_bp
    from farmacia.blueprints.catalog import catalog_bp
    from farmacia.blueprints.dashboard import dashboard_bp
    from farmacia.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(metrics_bp)

    # JSON API: the POS client sends JSON, not HTML forms
    if not app.config.get('CSRF_PROTECT_API', False):
        for blueprint in (sales_bp, catalog_bp):
            csrf.exempt(blueprint)

    # Register CLI commands
    from farmacia.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
