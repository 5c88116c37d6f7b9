# Overview: Flask CLI command groups for bootstrap, catalog setup, and ledger maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; production uses flask db upgrade).
# - python -m flask system seed
#   Idempotent demo data: store "cascavel", three products with stock, a demo
#   customer and the WELCOME10 coupon.
#
# Stores (tenants):
# - python -m flask stores create --name "ForFit - Cascavel" --subdomain cascavel --city Cascavel --state PR --api-key ... --webhook-secret ...
# - python -m flask stores list
#
# Catalog and stock:
# - python -m flask products create --code FF-001 --name "Sopa" --price-cents 1990
# - python -m flask inventory set --store cascavel --product FF-001 --quantity 50
#
# People:
# - python -m flask users create --name "Ana" --email ana@example.com --password "Password123" --phone 45999990000
# - python -m flask influencers create --name "Bia" --email bia@example.com
#
# Coupons:
# - python -m flask coupons create --code WELCOME10 --type PERCENT --value 10 [--influencer-email bia@example.com] [--push-to cascavel]
# - python -m flask coupons list [--remote cascavel]
#
# Points:
# - python -m flask points audit
#   Compare cached balances with ledger sums; exits 1 on drift.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, Product, StoreInventory, User, Influencer, Coupon
from .models.coupons import COUPON_TYPES, COUPON_TYPE_PERCENT
from .services.auth_service import create_user, validate_password_strength, PasswordValidationError
from .services.gateway_client import CouponInput, GatewayError, client_for_store
from .services.points_service import audit_ledgers


def _store_by_subdomain(subdomain: str) -> Store:
    store = db.session.query(Store).filter_by(subdomain=subdomain.strip().lower()).first()
    if not store:
        raise click.ClickException(f"Store '{subdomain}' not found")
    return store


def _upsert_inventory(store_id: int, product_id: int, quantity: int) -> StoreInventory:
    row = db.session.query(StoreInventory).filter_by(store_id=store_id, product_id=product_id).first()
    if row:
        row.quantity = quantity
    else:
        row = StoreInventory(store_id=store_id, product_id=product_id, quantity=quantity)
        db.session.add(row)
    db.session.commit()
    return row


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for local development."""
    db.create_all()
    click.echo("PASS Database tables created")


SEED_PRODUCTS = [
    ("FF-001", "Macarrão com Frango ao Molho de Queijo", "Cremoso, leve e saboroso", 1200, 2390),
    ("FF-002", "Lasagna de Abobrinha Low Carb", "Camadas de abobrinha, molho de tomate e queijo", 1500, 2890),
    ("FF-003", "Sopa de Mandioquinha", "Conforto em forma de sopa", 900, 1990),
]


@system_group.command('seed')
@click.option('--stock', default=50, show_default=True, help='Quantity per product in the seed store')
@with_appcontext
def seed(stock):
    """
    Insert demo data. Safe to re-run; existing rows are left alone except
    inventory, which is reset to --stock.

    SECURITY: The demo customer password is public. Never seed production.
    """
    click.echo("START Seeding demo data...")

    store = db.session.query(Store).filter_by(subdomain="cascavel").first()
    if not store:
        store = Store(name="ForFit - Cascavel", subdomain="cascavel", city="Cascavel", state="PR")
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    for code, name, description, cost, price in SEED_PRODUCTS:
        product = db.session.query(Product).filter_by(code=code).first()
        if not product:
            product = Product(
                code=code,
                name=name,
                description=description,
                photo_url=f"https://picsum.photos/seed/{code.lower().replace('-', '')}/600/400",
                cost_price_cents=cost,
                sale_price_cents=price,
            )
            db.session.add(product)
            db.session.commit()
            click.echo(f"PASS Created product {code}")
        _upsert_inventory(store.id, product.id, stock)

    if not db.session.query(Coupon).filter_by(code="WELCOME10").first():
        db.session.add(Coupon(code="WELCOME10", type=COUPON_TYPE_PERCENT, value=10))
        db.session.commit()
        click.echo("PASS Created coupon WELCOME10 (10%)")

    if not db.session.query(User).filter_by(email="cliente@forfit.local").first():
        create_user(
            name="Cliente Demo",
            email="cliente@forfit.local",
            password="Password123",
            phone="45999990000",
            store_id=store.id,
        )
        click.echo("PASS Created user cliente@forfit.local / Password123")

    click.echo("DONE Seed complete")


# =============================================================================
# STORES
# =============================================================================

@click.group('stores')
def stores_group():
    """Store (tenant) management."""


@stores_group.command('create')
@click.option('--name', required=True)
@click.option('--subdomain', required=True)
@click.option('--city', required=True)
@click.option('--state', required=True, help='Two-letter state code')
@click.option('--api-key', default=None, help='Payment provider API key')
@click.option('--webhook-secret', default=None, help='Payment provider webhook secret')
@with_appcontext
def create_store(name, subdomain, city, state, api_key, webhook_secret):
    """Create a store. The subdomain is the tenant key in request hosts."""
    subdomain = subdomain.strip().lower()
    if db.session.query(Store).filter_by(subdomain=subdomain).first():
        raise click.ClickException(f"Store '{subdomain}' already exists")

    store = Store(
        name=name,
        subdomain=subdomain,
        city=city,
        state=state.strip().upper()[:2],
        gateway_api_key=api_key,
        gateway_webhook_secret=webhook_secret,
    )
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store {store.name} (ID: {store.id}, subdomain: {store.subdomain})")


@stores_group.command('list')
@with_appcontext
def list_stores():
    """List stores and whether payments are configured."""
    stores = db.session.query(Store).order_by(Store.id).all()
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        status = "active" if store.is_active else "inactive"
        gateway = "gateway ok" if store.has_gateway else "no gateway key"
        webhook = "webhook ok" if store.gateway_webhook_secret else "no webhook secret"
        click.echo(f"{store.id}\t{store.subdomain}\t{store.name}\t{status}\t{gateway}\t{webhook}")


# =============================================================================
# CATALOG
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog management."""


@products_group.command('create')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--cost-cents', type=int, default=0, show_default=True)
@click.option('--description', default=None)
@click.option('--photo-url', default=None)
@with_appcontext
def create_product(code, name, price_cents, cost_cents, description, photo_url):
    if price_cents < 0 or cost_cents < 0:
        raise click.ClickException("Prices must not be negative")
    if db.session.query(Product).filter_by(code=code).first():
        raise click.ClickException(f"Product '{code}' already exists")

    product = Product(
        code=code,
        name=name,
        description=description,
        photo_url=photo_url,
        cost_price_cents=cost_cents,
        sale_price_cents=price_cents,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product {product.code} (ID: {product.id})")


@click.group('inventory')
def inventory_group():
    """Per-store stock."""


@inventory_group.command('set')
@click.option('--store', 'subdomain', required=True, help='Store subdomain')
@click.option('--product', 'product_code', required=True, help='Product code')
@click.option('--quantity', type=click.IntRange(min=0), required=True)
@with_appcontext
def set_inventory(subdomain, product_code, quantity):
    """Set the absolute stock of a product in a store."""
    store = _store_by_subdomain(subdomain)
    product = db.session.query(Product).filter_by(code=product_code).first()
    if not product:
        raise click.ClickException(f"Product '{product_code}' not found")

    _upsert_inventory(store.id, product.id, quantity)
    click.echo(f"PASS {store.subdomain}/{product.code} quantity = {quantity}")


# =============================================================================
# PEOPLE
# =============================================================================

@click.group('users')
def users_group():
    """Customer accounts."""


@users_group.command('create')
@click.option('--name', required=True)
@click.option('--email', required=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--tax-id', default=None, help='CPF/CNPJ')
@click.option('--phone', default=None, help='Needed for payment links')
@click.option('--store', 'subdomain', default=None, help='Home store subdomain')
@with_appcontext
def create_user_command(name, email, password, tax_id, phone, subdomain):
    """Create a customer account (there is no self-registration)."""
    try:
        validate_password_strength(password)
    except PasswordValidationError as e:
        raise click.ClickException(str(e))

    store_id = _store_by_subdomain(subdomain).id if subdomain else None
    try:
        user = create_user(
            name=name,
            email=email,
            password=password,
            tax_id=tax_id,
            phone=phone,
            store_id=store_id,
        )
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id})")


@click.group('influencers')
def influencers_group():
    """Coupon referrers."""


@influencers_group.command('create')
@click.option('--name', required=True)
@click.option('--email', required=True)
@with_appcontext
def create_influencer(name, email):
    email = email.strip().lower()
    if db.session.query(Influencer).filter_by(email=email).first():
        raise click.ClickException(f"Influencer '{email}' already exists")
    influencer = Influencer(name=name, email=email)
    db.session.add(influencer)
    db.session.commit()
    click.echo(f"PASS Created influencer {influencer.email} (ID: {influencer.id})")


# =============================================================================
# COUPONS
# =============================================================================

@click.group('coupons')
def coupons_group():
    """Discount coupons."""


@coupons_group.command('create')
@click.option('--code', required=True)
@click.option('--type', 'coupon_type', type=click.Choice(COUPON_TYPES), required=True)
@click.option('--value', type=click.IntRange(min=0), required=True, help='Percent (PERCENT) or cents (FIXED)')
@click.option('--influencer-email', default=None)
@click.option('--push-to', 'push_to', default=None, help='Also create the coupon at the payment provider for this store')
@click.option('--max-redeems', type=int, default=-1, show_default=True, help='Provider-side limit (-1 = unlimited)')
@with_appcontext
def create_coupon(code, coupon_type, value, influencer_email, push_to, max_redeems):
    """
    Create a coupon locally and optionally at the payment provider.

    The provider only applies coupons it knows, so a coupon used in checkout
    billing links should be pushed to each store that accepts it.
    """
    code = code.strip()
    if coupon_type == COUPON_TYPE_PERCENT and value > 100:
        raise click.ClickException("PERCENT coupons take a value between 0 and 100")
    if db.session.query(Coupon).filter_by(code=code).first():
        raise click.ClickException(f"Coupon '{code}' already exists")

    influencer_id = None
    if influencer_email:
        influencer = db.session.query(Influencer).filter_by(email=influencer_email.strip().lower()).first()
        if not influencer:
            raise click.ClickException(f"Influencer '{influencer_email}' not found")
        influencer_id = influencer.id

    store = _store_by_subdomain(push_to) if push_to else None

    coupon = Coupon(code=code, type=coupon_type, value=value, influencer_id=influencer_id)
    db.session.add(coupon)
    db.session.commit()
    click.echo(f"PASS Created coupon {coupon.code} ({coupon.type} {coupon.value})")

    if store is None:
        return

    try:
        with client_for_store(store) as client:
            client.create_coupon(CouponInput(
                code=coupon.code,
                max_redeems=max_redeems,
                discount_kind="PERCENTAGE" if coupon.type == COUPON_TYPE_PERCENT else "FIXED",
                discount=coupon.value,
                notes=f"Coupon {coupon.code}",
                metadata={"influencer_id": influencer_id} if influencer_id else None,
            ))
    except GatewayError as e:
        raise click.ClickException(f"Coupon saved locally but provider sync failed: {e}")
    click.echo(f"PASS Pushed coupon {coupon.code} to provider for store {store.subdomain}")


@coupons_group.command('list')
@click.option('--remote', 'remote', default=None, help='List the coupons registered at the provider for this store instead')
@with_appcontext
def list_coupons(remote):
    if remote:
        store = _store_by_subdomain(remote)
        try:
            with client_for_store(store) as client:
                remote_coupons = client.list_coupons()
        except GatewayError as e:
            raise click.ClickException(f"Provider request failed: {e}")
        for item in remote_coupons:
            click.echo(f"{item.get('id')}\t{item.get('code')}\t{item.get('discountKind')}\t{item.get('discount')}")
        return

    for coupon in db.session.query(Coupon).order_by(Coupon.code).all():
        status = "active" if coupon.active else "inactive"
        click.echo(f"{coupon.code}\t{coupon.type}\t{coupon.value}\t{status}\tused={coupon.used_count}")


# =============================================================================
# POINTS
# =============================================================================

@click.group('points')
def points_group():
    """Loyalty points ledger."""


@points_group.command('audit')
@with_appcontext
def audit_points():
    """Verify every cached balance equals the sum of its ledger rows."""
    drift = audit_ledgers()
    if not drift:
        click.echo("PASS All point balances match their ledgers")
        return

    for row in drift:
        click.echo(
            f"FAIL {row.account_type} {row.owner_id}: "
            f"cached={row.cached_balance} ledger={row.ledger_balance}"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(users_group)
    app.cli.add_command(influencers_group)
    app.cli.add_command(coupons_group)
    app.cli.add_command(points_group)
