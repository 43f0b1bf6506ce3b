"""
Flask CLI commands for store management.

Commands:
- flask init-db: Create all tables
- flask create-admin: Create a new admin user
- flask seed-demo: Insert a small demo catalog
"""

import re
from decimal import Decimal

import click
from storefront.database import Base, get_engine, get_session
from storefront.models import (
    AppUser, UserRole, Product, ProductVariant, ShippingMethod, Coupon, CouponType
)
from storefront.services.settings_service import update_setting, TAX_RATE_KEY

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables from the ORM metadata."""
        Base.metadata.create_all(bind=get_engine())
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--name', default='Administrator', help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
    def create_admin(email, name, password):
        """Create a new admin user."""
        if not re.match(EMAIL_PATTERN, email):
            click.echo(click.style('Invalid email. Use the format user@example.com', fg='red'))
            return

        if len(password) < 8:
            click.echo(click.style('Password must be at least 8 characters long.', fg='red'))
            return

        db_session = get_session()
        if db_session.query(AppUser).filter_by(email=email).first():
            click.echo(click.style(f'A user with email {email} already exists.', fg='red'))
            return

        try:
            admin = AppUser(email=email, name=name, role=UserRole.ADMIN.value)
            admin.set_password(password)
            db_session.add(admin)
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

        click.echo(click.style('Admin user created.', fg='green', bold=True))
        click.echo(f'   Email: {email}')
        click.echo(f'   ID: {admin.id}')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Insert demo products, shipping methods, a coupon and the tax rate."""
        db_session = get_session()
        if db_session.query(Product).filter_by(slug='classic-tee').first():
            click.echo(click.style('Demo data already present.', fg='yellow'))
            return

        try:
            tee = Product(name='Classic Tee', slug='classic-tee', sku='TEE-001',
                          price=Decimal('19.99'), stock=100)
            tee.variants = [
                ProductVariant(name='Small', sku='TEE-001-S', stock=30),
                ProductVariant(name='Large', sku='TEE-001-L', price=Decimal('21.99'), stock=30),
            ]
            db_session.add_all([
                tee,
                Product(name='Canvas Tote', slug='canvas-tote', sku='TOTE-001',
                        price=Decimal('24.50'), stock=50),
                Product(name='Enamel Mug', slug='enamel-mug', sku='MUG-001',
                        price=Decimal('12.00'), stock=75),
                ShippingMethod(name='Standard', description='5-7 business days', price=Decimal('4.99')),
                ShippingMethod(name='Express', description='1-2 business days', price=Decimal('14.99')),
                Coupon(code='WELCOME10', description='10% off your first order',
                       type=CouponType.PERCENTAGE, value=Decimal('10'),
                       min_amount=Decimal('20.00'), max_uses=100, max_uses_per_user=1),
            ])
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

        update_setting(db_session, TAX_RATE_KEY, '0.08', 'NUMBER', is_public=True)
        click.echo(click.style('Demo data inserted.', fg='green', bold=True))
