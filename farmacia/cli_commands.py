"""
Flask CLI commands for store management.

Commands:
- flask init-db: Create tables and sale number sequences
- flask seed-demo: Insert the demo pharmacy products
- flask low-stock: Print the low stock report
"""

import click
from flask import current_app

from farmacia.services import catalog_service, dashboard_service
from farmacia.stores import get_store


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db():
        """Create tables and sale number sequences (sql backend only)."""
        store = get_store()
        if store.backend_name != 'sql':
            click.echo(click.style(f'ℹ️  El backend "{store.backend_name}" no usa base de datos.', fg='yellow'))
            return

        from farmacia.database import create_schema
        create_schema(store.engine)
        click.echo(click.style('✅ Tablas y secuencias creadas.', fg='green', bold=True))

    @app.cli.command('seed-demo')
    def seed_demo():
        """Insert the demo pharmacy products that are not in the store yet."""
        created = catalog_service.seed_demo_catalog(get_store())
        if not created:
            click.echo('Los productos de demostración ya existen.')
            return

        click.echo(click.style(f'✅ {len(created)} productos creados:', fg='green', bold=True))
        for product in created:
            click.echo(f'   {product.code}  {product.name}  stock={product.stock}')

    @app.cli.command('low-stock')
    def low_stock():
        """Print active products at or below their minimum stock."""
        products = dashboard_service.low_stock(get_store())
        if not products:
            click.echo('Sin productos con stock bajo.')
            return

        prefix = current_app.config.get('CURRENCY_PREFIX', 'S/')
        click.echo(click.style(f'⚠️  {len(products)} productos con stock bajo:', fg='red', bold=True))
        for product in products:
            click.echo(
                f'   {product.code}  {product.name}  stock={product.stock}  '
                f'mínimo={product.min_stock}  precio={prefix} {product.price}'
            )
