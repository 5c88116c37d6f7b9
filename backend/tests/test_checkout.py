# Overview: Pytest coverage for the checkout saga (pricing, payment link, stock, compensation).

"""
Checkout Tests

Covers:
- Pricing: subtotal, coupon, points redemption, shipping
- Payment link creation and customer id caching
- Stock pre-check and the conditional decrement
- Compensation: gateway failure, malformed provider replies, database
  errors and a lost stock race leave no order behind
"""

import httpx
from sqlalchemy.exc import OperationalError

from storefront.extensions import db
from storefront.models import Order, OrderItem, OrderDelivery, StoreInventory, Coupon, User
from storefront.services.gateway_client import GatewayClient, GatewayError
from storefront.services.points_service import credit_user_points

from conftest import STORE_URL, OTHER_STORE_URL, add_product, delivery_payload, inventory_of


def post_checkout(client, headers, items, base_url=STORE_URL, **extra):
    body = {"items": items, "delivery": delivery_payload(extra.pop("state", "PR"))}
    body.update(extra)
    return client.post("/orders/checkout", json=body, headers=headers, base_url=base_url)


def order_count():
    return db.session.query(Order).count()


class TestHappyPath:
    def test_creates_pending_order_with_payment_link(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 2}])

        assert response.status_code == 201
        body = response.get_json()
        assert body["payment"]["url"].startswith("https://pay.test/")
        assert body["payment"]["billingId"]
        # 2 x 1000 + PR shipping 1200
        assert body["totalCents"] == 3200

        order = db.session.get(Order, body["orderId"])
        assert order.status == "PENDING"
        assert order.subtotal_cents == 2000
        assert order.discount_cents == 0
        assert order.shipping_cents == 1200
        assert order.points_earned == 2
        assert order.gateway_billing_id == body["payment"]["billingId"]
        assert order.gateway_status == "CREATED"
        assert order.delivery.city == "Cascavel"
        assert [(i.code_snapshot, i.quantity, i.total_cents) for i in order.items] == [("FF-001", 2, 2000)]

        assert inventory_of(store, product_a) == 3

    def test_billing_request_is_built_from_the_order(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 2}])
        order_id = response.get_json()["orderId"]

        billing = gateway.billings[0]
        assert gateway.stores == ["cascavel"]
        assert billing.external_id == str(order_id)
        assert billing.return_url == f"http://shop.test/checkout/success?orderId={order_id}"
        assert billing.completion_url == f"http://shop.test/checkout/completion?orderId={order_id}"
        assert [(p.external_id, p.price, p.quantity) for p in billing.products] == [("FF-001", 1000, 2)]
        assert billing.coupons is None

    def test_customer_id_is_cached(self, client, auth_headers, user, store, product_a, gateway):
        post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}])
        post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}])

        assert len(gateway.customers) == 1
        assert gateway.customers[0].cellphone == "45999990000"
        assert db.session.get(User, user.id).gateway_customer_id == "cust_1"
        assert len(gateway.billings) == 2

    def test_duplicate_lines_are_merged(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(client, auth_headers, [
            {"productId": product_a.id, "quantity": 2},
            {"productId": product_a.id, "quantity": 1},
        ])
        order = db.session.get(Order, response.get_json()["orderId"])
        assert [(i.product_id, i.quantity) for i in order.items] == [(product_a.id, 3)]
        assert inventory_of(store, product_a) == 2

    def test_shipping_outside_parana(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}], state="SP")
        assert response.get_json()["totalCents"] == 1000 + 1800

    def test_free_shipping_in_parana_above_threshold(self, client, auth_headers, store, product_b, gateway):
        response = post_checkout(client, auth_headers, [{"productId": product_b.id, "quantity": 6}])
        assert response.get_json()["totalCents"] == 15000


class TestDiscounts:
    def test_coupon_discount(self, client, auth_headers, store, product_b, coupon, gateway):
        response = post_checkout(
            client, auth_headers, [{"productId": product_b.id, "quantity": 2}], couponCode="BIA10",
        )
        assert response.status_code == 201

        order = db.session.get(Order, response.get_json()["orderId"])
        assert order.coupon_discount_cents == 500
        assert order.discount_cents == 500
        assert order.total_cents == 5000 - 500 + 1200
        assert order.coupon_code == "BIA10"
        assert order.influencer_id == coupon.influencer_id
        assert gateway.billings[0].coupons == ["BIA10"]

        # Coupon usage moves only on confirmed payment
        assert db.session.get(Coupon, coupon.id).used_count == 0

    def test_unknown_coupon(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(
            client, auth_headers, [{"productId": product_a.id, "quantity": 1}], couponCode="NOPE",
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_coupon"
        assert order_count() == 0

    def test_inactive_coupon(self, client, auth_headers, store, product_a, coupon, gateway):
        coupon.active = False
        db.session.commit()
        response = post_checkout(
            client, auth_headers, [{"productId": product_a.id, "quantity": 1}], couponCode="BIA10",
        )
        assert response.get_json()["error"] == "invalid_coupon"

    def test_points_redemption_is_capped_at_balance(self, client, auth_headers, user, store, product_b, gateway):
        credit_user_points(user.id, 30, order_id=None)
        db.session.commit()

        response = post_checkout(
            client, auth_headers, [{"productId": product_b.id, "quantity": 2}], pointsRedeem=500,
        )
        order = db.session.get(Order, response.get_json()["orderId"])
        assert order.points_redeemed == 30
        assert order.discount_cents == 300
        assert order.total_cents == 5000 - 300 + 1200

    def test_total_never_negative(self, client, auth_headers, store, gateway, db_session):
        cheap = add_product(store, "FF-010", 100, 5)
        db_session.add(Coupon(code="ALL", type="FIXED", value=100000))
        db_session.commit()

        response = post_checkout(
            client, auth_headers, [{"productId": cheap.id, "quantity": 1}], couponCode="ALL", state="SP",
        )
        # Discount capped at subtotal; shipping still charged
        assert response.get_json()["totalCents"] == 1800


class TestValidation:
    def test_insufficient_stock(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 10}])

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "insufficient_stock"
        assert body["product_id"] == product_a.id
        assert body["available"] == 5
        assert order_count() == 0
        assert gateway.billings == []

    def test_no_inventory_row_means_zero_available(self, client, auth_headers, store, gateway):
        product = add_product(store, "FF-020", 1000, None)
        response = post_checkout(client, auth_headers, [{"productId": product.id, "quantity": 1}])
        assert response.get_json()["available"] == 0

    def test_stock_belongs_to_the_addressed_store(self, client, auth_headers, store, other_store, product_a, gateway):
        response = post_checkout(
            client, auth_headers, [{"productId": product_a.id, "quantity": 1}], base_url=OTHER_STORE_URL,
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "insufficient_stock"

    def test_missing_products(self, client, auth_headers, store, product_a, gateway):
        response = post_checkout(client, auth_headers, [
            {"productId": product_a.id, "quantity": 1},
            {"productId": 9999, "quantity": 1},
        ])
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "invalid_products"
        assert body["missing"] == [9999]

    def test_inactive_product_counts_as_missing(self, client, auth_headers, store, product_a, gateway):
        product_a.is_active = False
        db.session.commit()
        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}])
        assert response.get_json()["missing"] == [product_a.id]

    def test_invalid_payloads(self, client, auth_headers, store, product_a, gateway):
        bad_bodies = [
            {"items": [], "delivery": delivery_payload()},
            {"items": [{"productId": product_a.id, "quantity": 0}], "delivery": delivery_payload()},
            {"items": [{"productId": product_a.id, "quantity": True}], "delivery": delivery_payload()},
            {"items": [{"productId": "abc", "quantity": 1}], "delivery": delivery_payload()},
            {"items": [{"productId": product_a.id, "quantity": 1}]},
            {"items": [{"productId": product_a.id, "quantity": 1}], "delivery": {**delivery_payload(), "zip": ""}},
            {"items": [{"productId": product_a.id, "quantity": 1}], "delivery": delivery_payload(), "pointsRedeem": -1},
        ]
        for body in bad_bodies:
            response = client.post("/orders/checkout", json=body, headers=auth_headers, base_url=STORE_URL)
            assert response.status_code == 400, body
            assert response.get_json()["error"] == "invalid_payload"

        assert order_count() == 0
        assert inventory_of(store, product_a) == 5

    def test_missing_delivery_fields_are_listed(self, client, auth_headers, store, product_a, gateway):
        delivery = delivery_payload()
        del delivery["district"]
        response = client.post(
            "/orders/checkout",
            json={"items": [{"productId": product_a.id, "quantity": 1}], "delivery": delivery},
            headers=auth_headers,
            base_url=STORE_URL,
        )
        assert response.get_json()["missing_fields"] == ["district"]


class TestCompensation:
    def test_gateway_failure_leaves_no_order(self, client, auth_headers, store, product_a, gateway_down):
        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 2}])

        assert response.status_code == 500
        body = response.get_json()
        assert body["error"] == "gateway_failure"
        assert body["upstream_status"] == 502

        assert order_count() == 0
        assert db.session.query(OrderItem).count() == 0
        assert db.session.query(OrderDelivery).count() == 0
        assert inventory_of(store, product_a) == 5

    def test_customer_creation_failure_is_a_gateway_failure(self, client, auth_headers, store, product_a, gateway):
        gateway.fail_customer = GatewayError("AbacatePay /customer/create 400", status_code=400)

        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}])

        assert response.status_code == 500
        assert response.get_json()["error"] == "gateway_failure"
        assert order_count() == 0
        assert inventory_of(store, product_a) == 5

    def test_stock_lost_during_payment_call(self, client, auth_headers, store, product_a, gateway):
        """A concurrent checkout drains stock between pre-check and decrement."""
        def drain():
            db.session.query(StoreInventory).filter_by(
                store_id=store.id, product_id=product_a.id,
            ).update({StoreInventory.quantity: 1}, synchronize_session=False)
            db.session.commit()

        gateway.on_billing = drain

        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 2}])

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "insufficient_stock"
        assert body["available"] == 1
        assert order_count() == 0
        assert inventory_of(store, product_a) == 1

    def test_multi_item_decrement_is_all_or_nothing(self, client, auth_headers, store, product_a, product_b, gateway):
        def drain_b():
            db.session.query(StoreInventory).filter_by(
                store_id=store.id, product_id=product_b.id,
            ).update({StoreInventory.quantity: 0}, synchronize_session=False)
            db.session.commit()

        gateway.on_billing = drain_b

        response = post_checkout(client, auth_headers, [
            {"productId": product_a.id, "quantity": 2},
            {"productId": product_b.id, "quantity": 1},
        ])

        assert response.get_json()["error"] == "insufficient_stock"
        assert inventory_of(store, product_a) == 5

    def test_malformed_provider_reply_leaves_no_order(self, client, auth_headers, store, product_a, monkeypatch):
        def handler(request):
            return httpx.Response(200, json={"data": ["x"], "error": None})

        monkeypatch.setattr(
            "storefront.services.checkout_service.client_for_store",
            lambda s: GatewayClient(
                s.gateway_api_key,
                base_url="https://gateway.test/v1",
                transport=httpx.MockTransport(handler),
            ),
        )

        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}])

        assert response.status_code == 500
        assert response.get_json()["error"] == "gateway_failure"
        assert order_count() == 0
        assert inventory_of(store, product_a) == 5

    def test_database_failure_after_payment_link_leaves_no_order(
        self, client, auth_headers, store, product_a, gateway, monkeypatch,
    ):
        def locked(store_id, product_id, quantity):
            raise OperationalError("UPDATE store_inventory", {}, Exception("database is locked"))

        monkeypatch.setattr("storefront.services.checkout_service._decrement_stock", locked)
        monkeypatch.setattr("storefront.services.concurrency.time.sleep", lambda _: None)

        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 2}])

        assert response.status_code == 500
        assert response.get_json()["error"] == "internal_error"
        assert len(gateway.billings) == 1
        assert order_count() == 0
        assert db.session.query(OrderItem).count() == 0
        assert inventory_of(store, product_a) == 5


class TestWithoutPaymentLink:
    def test_user_without_phone(self, client, auth_headers, user, store, product_a, gateway):
        user.phone = None
        db.session.commit()

        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 2}])

        assert response.status_code == 201
        assert response.get_json()["payment"] is None
        assert gateway.billings == []
        assert inventory_of(store, product_a) == 3

    def test_store_without_gateway_key(self, client, auth_headers, store, product_a, gateway):
        store.gateway_api_key = None
        db.session.commit()

        response = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}])

        assert response.status_code == 201
        assert response.get_json()["payment"] is None
        assert gateway.stores == []
        order = db.session.get(Order, response.get_json()["orderId"])
        assert order.gateway_billing_id is None
        assert order.status == "PENDING"


class TestOrderRoutes:
    def test_list_and_get_own_orders(self, client, auth_headers, store, product_a, gateway):
        first = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}]).get_json()
        second = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}]).get_json()

        response = client.get("/orders", headers=auth_headers, base_url=STORE_URL)
        assert response.status_code == 200
        orders = response.get_json()["orders"]
        assert [o["id"] for o in orders] == [second["orderId"], first["orderId"]]
        assert orders[0]["items"][0]["code"] == "FF-001"
        assert orders[0]["delivery"]["zip"] == "85801-000"

        response = client.get(f"/orders/{first['orderId']}", headers=auth_headers, base_url=STORE_URL)
        assert response.get_json()["order"]["status"] == "PENDING"

    def test_order_from_other_store_is_hidden(self, client, auth_headers, store, other_store, product_a, gateway):
        order_id = post_checkout(client, auth_headers, [{"productId": product_a.id, "quantity": 1}]).get_json()["orderId"]

        response = client.get(f"/orders/{order_id}", headers=auth_headers, base_url=OTHER_STORE_URL)
        assert response.status_code == 404
        response = client.get("/orders", headers=auth_headers, base_url=OTHER_STORE_URL)
        assert response.get_json()["orders"] == []
