# Overview: Checkout orchestration; prices a cart, persists the order, and issues a payment link.

"""
Checkout Service

WHY: Turns a cart into a PENDING order with a provider payment link, or
fails without leaving partial state behind.

The external billing call cannot live inside a DB transaction, so checkout
is an ordered sequence of steps with an explicit compensation for each
step that runs after a local write:

    1. price the cart (read-only: products, store inventory, coupon, points)
    2. persist Order + items + delivery (commit)           -> compensate: delete order
    3. resolve/create provider customer, create billing    -> on failure: step 2 compensation
    4. record billing id and decrement inventory (commit)  -> on shortfall: rollback + step 2 compensation

INVENTORY: The pre-check in step 1 gives a fast, descriptive rejection. The
authoritative check is the conditional UPDATE in step 4
(quantity = quantity - q WHERE quantity >= q), so two concurrent checkouts
can never take the same unit.

Checkout is not idempotent: each call creates a new order.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    Coupon,
    Order,
    OrderDelivery,
    OrderItem,
    Product,
    Store,
    StoreInventory,
    User,
)
from ..models.orders import ORDER_STATUS_PENDING
from .concurrency import run_with_retry
from .gateway_client import (
    BillingInput,
    BillingProduct,
    CustomerInput,
    GatewayError,
    client_for_store,
)
from .points_service import (
    clamp_redemption,
    get_user_balance,
    points_earned_for_subtotal,
    redemption_value_cents,
)
from .pricing_service import apply_coupon, calc_subtotal
from .shipping_service import calculate_shipping


GATEWAY_STATUS_CREATED = "CREATED"

DELIVERY_FIELDS = ("street", "number", "district", "city", "state", "zip")


class CheckoutError(Exception):
    """Raised for checkout failures; code is machine-readable."""

    def __init__(self, code: str, message: str | None = None, *, status_code: int = 400, details: dict | None = None):
        super().__init__(message or code)
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class _StockShortfall(Exception):
    def __init__(self, product_id: int):
        super().__init__(f"insufficient stock for product {product_id}")
        self.product_id = product_id


# =============================================================================
# INPUT
# =============================================================================

@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class DeliveryAddress:
    street: str
    number: str
    district: str
    city: str
    state: str
    zip: str


@dataclass(frozen=True)
class CheckoutRequest:
    items: list[CartLine]
    delivery: DeliveryAddress
    coupon_code: str | None = None
    points_redeem: int = 0


def _as_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise CheckoutError("invalid_payload", f"{field_name} must be an integer", details={"field": field_name})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise CheckoutError("invalid_payload", f"{field_name} must be an integer", details={"field": field_name})


def parse_checkout_payload(data, *, address_lookup=None) -> CheckoutRequest:
    """
    Validate the checkout JSON body.

    Expected shape:
    {
        "items": [{"productId": 1, "quantity": 2}],
        "delivery": {"street", "number", "district", "city", "state", "zip"},
        "addressId": 3,              (instead of delivery)
        "couponCode": "WELCOME10",   (optional)
        "pointsRedeem": 0            (optional)
    }

    Lines for the same product are merged by summing quantities.
    address_lookup maps an addressId to a saved Address of the caller (or
    None); an explicit delivery object wins over addressId.
    """
    if not isinstance(data, dict):
        raise CheckoutError("invalid_payload", "JSON object body required")

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise CheckoutError("invalid_payload", "items must be a non-empty list", details={"field": "items"})

    quantities: dict[int, int] = {}
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise CheckoutError("invalid_payload", "each item must be an object", details={"field": "items"})
        product_id = _as_int(raw.get("productId"), "productId")
        quantity = _as_int(raw.get("quantity"), "quantity")
        if quantity <= 0:
            raise CheckoutError("invalid_payload", "quantity must be positive", details={"field": "quantity"})
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    raw_delivery = data.get("delivery")
    if raw_delivery is None and data.get("addressId") is not None:
        address_id = _as_int(data.get("addressId"), "addressId")
        address = address_lookup(address_id) if address_lookup else None
        if address is None:
            raise CheckoutError("address_not_found", status_code=404, details={"field": "addressId"})
        raw_delivery = address.delivery_fields()
    if not isinstance(raw_delivery, dict):
        raise CheckoutError("invalid_payload", "delivery is required", details={"field": "delivery"})
    missing = [f for f in DELIVERY_FIELDS if not str(raw_delivery.get(f) or "").strip()]
    if missing:
        raise CheckoutError("invalid_payload", "delivery is incomplete", details={"missing_fields": missing})
    delivery = DeliveryAddress(**{f: str(raw_delivery[f]).strip() for f in DELIVERY_FIELDS})

    coupon_code = data.get("couponCode")
    if coupon_code is not None:
        if not isinstance(coupon_code, str):
            raise CheckoutError("invalid_payload", "couponCode must be a string", details={"field": "couponCode"})
        coupon_code = coupon_code.strip() or None

    points_redeem = data.get("pointsRedeem")
    points_redeem = 0 if points_redeem is None else _as_int(points_redeem, "pointsRedeem")
    if points_redeem < 0:
        raise CheckoutError("invalid_payload", "pointsRedeem must not be negative", details={"field": "pointsRedeem"})

    return CheckoutRequest(
        items=[CartLine(product_id=pid, quantity=qty) for pid, qty in quantities.items()],
        delivery=delivery,
        coupon_code=coupon_code,
        points_redeem=points_redeem,
    )


# =============================================================================
# OUTPUT
# =============================================================================

@dataclass(frozen=True)
class PaymentLink:
    billing_id: str
    url: str | None


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    total_cents: int
    payment: PaymentLink | None

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "totalCents": self.total_cents,
            "payment": (
                {"billingId": self.payment.billing_id, "url": self.payment.url}
                if self.payment else None
            ),
        }


@dataclass
class _Quote:
    lines: list[OrderItem]
    subtotal_cents: int
    coupon_discount_cents: int
    discount_cents: int
    shipping_cents: int
    total_cents: int
    points_redeemed: int
    points_earned: int
    coupon: Coupon | None = None
    influencer_id: int | None = None


# =============================================================================
# STEP 1: PRICE THE CART (read-only)
# =============================================================================

def _load_products_with_stock(store_id: int, product_ids: list[int]) -> dict[int, tuple[Product, int]]:
    rows = (
        db.session.query(Product, StoreInventory.quantity)
        .outerjoin(
            StoreInventory,
            (StoreInventory.product_id == Product.id) & (StoreInventory.store_id == store_id),
        )
        .filter(Product.id.in_(product_ids), Product.is_active.is_(True))
        .all()
    )
    return {product.id: (product, int(quantity or 0)) for product, quantity in rows}


def _price_cart(user: User, store: Store, cart: CheckoutRequest) -> _Quote:
    product_ids = [line.product_id for line in cart.items]
    found = _load_products_with_stock(store.id, product_ids)

    missing = [pid for pid in product_ids if pid not in found]
    if missing:
        raise CheckoutError("invalid_products", details={"missing": missing})

    for line in cart.items:
        _, available = found[line.product_id]
        if line.quantity > available:
            raise CheckoutError(
                "insufficient_stock",
                details={"product_id": line.product_id, "available": available},
            )

    order_lines = []
    for line in cart.items:
        product, _ = found[line.product_id]
        order_lines.append(OrderItem(
            product_id=product.id,
            name_snapshot=product.name,
            code_snapshot=product.code,
            unit_price_cents=product.sale_price_cents,
            quantity=line.quantity,
            total_cents=product.sale_price_cents * line.quantity,
        ))

    subtotal_cents = calc_subtotal(order_lines)

    coupon = None
    coupon_discount_cents = 0
    if cart.coupon_code:
        coupon = db.session.query(Coupon).filter_by(code=cart.coupon_code).first()
        if coupon is None or not coupon.active:
            raise CheckoutError("invalid_coupon", details={"coupon_code": cart.coupon_code})
        coupon_discount_cents = apply_coupon(subtotal_cents, coupon).discount_cents

    points_redeemed = 0
    if cart.points_redeem > 0:
        points_redeemed = clamp_redemption(cart.points_redeem, get_user_balance(user.id))

    discount_cents = coupon_discount_cents + redemption_value_cents(points_redeemed)

    shipping_cents = calculate_shipping(
        state=cart.delivery.state,
        city=cart.delivery.city,
        zip_code=cart.delivery.zip,
        subtotal_cents=subtotal_cents,
    )

    return _Quote(
        lines=order_lines,
        subtotal_cents=subtotal_cents,
        coupon_discount_cents=coupon_discount_cents,
        discount_cents=discount_cents,
        shipping_cents=shipping_cents,
        total_cents=max(subtotal_cents - discount_cents + shipping_cents, 0),
        points_redeemed=points_redeemed,
        points_earned=points_earned_for_subtotal(subtotal_cents),
        coupon=coupon,
        influencer_id=coupon.influencer_id if coupon else None,
    )


# =============================================================================
# STEP 2: PERSIST THE PENDING ORDER
# =============================================================================

def _create_pending_order(user: User, store: Store, cart: CheckoutRequest, quote: _Quote) -> Order:
    order = Order(
        user_id=user.id,
        store_id=store.id,
        status=ORDER_STATUS_PENDING,
        subtotal_cents=quote.subtotal_cents,
        discount_cents=quote.discount_cents,
        coupon_discount_cents=quote.coupon_discount_cents,
        shipping_cents=quote.shipping_cents,
        total_cents=quote.total_cents,
        points_earned=quote.points_earned,
        points_redeemed=quote.points_redeemed,
        coupon_code=quote.coupon.code if quote.coupon else None,
        influencer_id=quote.influencer_id,
    )
    order.items = quote.lines
    order.delivery = OrderDelivery(
        street=cart.delivery.street,
        number=cart.delivery.number,
        district=cart.delivery.district,
        city=cart.delivery.city,
        state=cart.delivery.state,
        zip=cart.delivery.zip,
    )

    db.session.add(order)
    db.session.commit()

    current_app.logger.info(
        "Order %s created for user %s in store %s (total=%s cents)",
        order.id, user.id, store.id, order.total_cents,
    )
    return order


def _delete_order(order_id: int) -> bool:
    """
    Compensation for step 2. Returns False if the delete itself failed;
    the order id is logged so it can be cleaned up out of band.
    """
    try:
        order = db.session.get(Order, order_id)
        if order is not None:
            db.session.delete(order)
            db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Compensation failed: could not delete order %s", order_id)
        return False


# =============================================================================
# STEP 3: PROVIDER CUSTOMER + BILLING LINK
# =============================================================================

def _ensure_gateway_customer(client, user: User) -> str | None:
    """
    Return the provider customer id for a user, creating it once.

    Creating a customer needs a phone number; without one the order goes
    ahead with no payment link.
    """
    if user.gateway_customer_id:
        return user.gateway_customer_id
    if not user.phone:
        return None

    customer = client.create_customer(CustomerInput(
        name=user.name,
        email=user.email,
        tax_id=user.tax_id or "",
        cellphone=user.phone,
    ))
    user.gateway_customer_id = customer.id
    db.session.commit()
    return customer.id


def _issue_payment_link(user: User, store: Store, order: Order) -> PaymentLink | None:
    if not store.has_gateway:
        current_app.logger.warning("Store %s has no payment gateway key; order %s has no payment link", store.id, order.id)
        return None

    frontend_url = current_app.config["FRONTEND_URL"].rstrip("/")

    with client_for_store(store) as client:
        customer_id = _ensure_gateway_customer(client, user)
        if customer_id is None:
            current_app.logger.info("User %s has no phone; order %s proceeds without payment link", user.id, order.id)
            return None

        billing = client.create_billing(BillingInput(
            customer_id=customer_id,
            products=[
                BillingProduct(
                    external_id=item.code_snapshot,
                    name=item.name_snapshot,
                    description=f"Produto: {item.name_snapshot}",
                    price=item.unit_price_cents,
                    quantity=item.quantity,
                )
                for item in order.items
            ],
            coupons=[order.coupon_code] if order.coupon_code else None,
            external_id=str(order.id),
            return_url=f"{frontend_url}/checkout/success?orderId={order.id}",
            completion_url=f"{frontend_url}/checkout/completion?orderId={order.id}",
        ))

    return PaymentLink(billing_id=billing.id, url=billing.url)


# =============================================================================
# STEP 4: RECORD BILLING + DECREMENT INVENTORY
# =============================================================================

def _decrement_stock(store_id: int, product_id: int, quantity: int) -> None:
    updated = (
        db.session.query(StoreInventory)
        .filter(
            StoreInventory.store_id == store_id,
            StoreInventory.product_id == product_id,
            StoreInventory.quantity >= quantity,
        )
        .update(
            {StoreInventory.quantity: StoreInventory.quantity - quantity},
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise _StockShortfall(product_id)


def _commit_payment_and_stock(order_id: int, store_id: int, lines: list[tuple[int, int]], payment: PaymentLink | None) -> None:
    def _op():
        if payment is not None:
            db.session.query(Order).filter_by(id=order_id).update(
                {
                    Order.gateway_billing_id: payment.billing_id,
                    Order.gateway_status: GATEWAY_STATUS_CREATED,
                },
                synchronize_session=False,
            )
        for product_id, quantity in lines:
            _decrement_stock(store_id, product_id, quantity)
        db.session.commit()

    try:
        run_with_retry(_op)
    except _StockShortfall:
        db.session.rollback()
        raise


def _available_quantity(store_id: int, product_id: int) -> int:
    quantity = (
        db.session.query(StoreInventory.quantity)
        .filter_by(store_id=store_id, product_id=product_id)
        .scalar()
    )
    return int(quantity or 0)


# =============================================================================
# ORCHESTRATION
# =============================================================================

def checkout(user: User, store: Store, cart: CheckoutRequest) -> CheckoutResult:
    """
    Create a PENDING order with a payment link for the given store.

    Raises:
        CheckoutError("invalid_products" | "insufficient_stock" | "invalid_coupon", 400)
        CheckoutError("gateway_failure", 500) after deleting the new order

    Any other failure after the order is created also deletes it before
    propagating.
    """
    quote = _price_cart(user, store, cart)
    order = _create_pending_order(user, store, cart, quote)
    order_id = order.id
    lines = [(item.product_id, item.quantity) for item in order.items]

    try:
        payment = _issue_payment_link(user, store, order)
    except GatewayError as exc:
        current_app.logger.exception("Payment gateway failed for order %s; rolling back order", order_id)
        db.session.rollback()
        _delete_order(order_id)
        raise CheckoutError(
            "gateway_failure",
            str(exc),
            status_code=500,
            details={"upstream_status": exc.status_code},
        ) from exc
    except Exception:
        current_app.logger.exception("Payment link step failed for order %s; rolling back order", order_id)
        db.session.rollback()
        _delete_order(order_id)
        raise

    try:
        _commit_payment_and_stock(order_id, store.id, lines, payment)
    except _StockShortfall as shortfall:
        if payment is not None:
            current_app.logger.warning(
                "Billing %s for order %s orphaned: stock ran out before inventory commit",
                payment.billing_id, order_id,
            )
        _delete_order(order_id)
        raise CheckoutError(
            "insufficient_stock",
            details={
                "product_id": shortfall.product_id,
                "available": _available_quantity(store.id, shortfall.product_id),
            },
        ) from shortfall
    except Exception:
        current_app.logger.exception(
            "Recording billing and stock failed for order %s; rolling back order", order_id,
        )
        db.session.rollback()
        _delete_order(order_id)
        raise

    current_app.logger.info(
        "Order %s checkout complete (billing=%s)",
        order_id, payment.billing_id if payment else None,
    )
    return CheckoutResult(order_id=order_id, total_cents=quote.total_cents, payment=payment)
