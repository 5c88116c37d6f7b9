# Overview: Pytest coverage for favorites, the address book and checkout with a saved address.

from storefront.extensions import db
from storefront.models import Address, Favorite, Order
from storefront.services.auth_service import create_user
from storefront.services.session_service import create_session

from conftest import STORE_URL, delivery_payload


ADDRESS = {
    "street": "Rua Paraná",
    "number": "100",
    "district": "Centro",
    "city": "Cascavel",
    "state": "pr",
    "zip": "85801-000",
}


def other_user_headers(store):
    other = create_user(
        name="Bruno Cliente",
        email="bruno@example.com",
        password="Password123",
        store_id=store.id,
    )
    _, token = create_session(other.id)
    return {"Authorization": f"Bearer {token}"}


class TestFavorites:
    def test_add_list_remove(self, client, auth_headers, product_a, product_b):
        assert client.post(f"/me/favorites/{product_a.id}", headers=auth_headers).status_code == 201
        assert client.post(f"/me/favorites/{product_b.id}", headers=auth_headers).status_code == 201

        response = client.get("/me/favorites", headers=auth_headers)
        assert response.status_code == 200
        favorites = response.get_json()["favorites"]
        # newest first
        assert [f["product_id"] for f in favorites] == [product_b.id, product_a.id]
        assert favorites[1]["product"]["code"] == "FF-001"

        assert client.delete(f"/me/favorites/{product_a.id}", headers=auth_headers).status_code == 204
        favorites = client.get("/me/favorites", headers=auth_headers).get_json()["favorites"]
        assert [f["product_id"] for f in favorites] == [product_b.id]

    def test_adding_twice_keeps_one_row(self, client, auth_headers, product_a):
        assert client.post(f"/me/favorites/{product_a.id}", headers=auth_headers).status_code == 201
        response = client.post(f"/me/favorites/{product_a.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json() == {"ok": True}
        assert db.session.query(Favorite).count() == 1

    def test_unknown_or_inactive_product(self, client, auth_headers, product_a):
        assert client.post("/me/favorites/9999", headers=auth_headers).status_code == 404

        product_a.is_active = False
        db.session.commit()
        response = client.post(f"/me/favorites/{product_a.id}", headers=auth_headers)
        assert response.status_code == 404
        assert response.get_json()["error"] == "product_not_found"

    def test_remove_missing_favorite(self, client, auth_headers, product_a):
        response = client.delete(f"/me/favorites/{product_a.id}", headers=auth_headers)
        assert response.status_code == 404
        assert response.get_json()["error"] == "not_found"

    def test_favorites_are_per_user(self, client, auth_headers, store, product_a):
        client.post(f"/me/favorites/{product_a.id}", headers=auth_headers)
        other = other_user_headers(store)

        assert client.get("/me/favorites", headers=other).get_json()["favorites"] == []
        assert client.delete(f"/me/favorites/{product_a.id}", headers=other).status_code == 404
        assert db.session.query(Favorite).count() == 1

    def test_requires_auth(self, client, db_session, product_a):
        assert client.get("/me/favorites").status_code == 401
        assert client.post(f"/me/favorites/{product_a.id}").status_code == 401


class TestAddresses:
    def test_create_and_list(self, client, auth_headers):
        response = client.post("/me/addresses", json=ADDRESS, headers=auth_headers)
        assert response.status_code == 201
        address = response.get_json()["address"]
        assert address["state"] == "PR"
        assert address["street"] == "Rua Paraná"

        addresses = client.get("/me/addresses", headers=auth_headers).get_json()["addresses"]
        assert [a["id"] for a in addresses] == [address["id"]]

    def test_invalid_fields_are_listed(self, client, auth_headers):
        body = {**ADDRESS, "zip": "123", "state": "Paraná"}
        del body["city"]
        response = client.post("/me/addresses", json=body, headers=auth_headers)

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "invalid_payload"
        assert sorted(body["invalid_fields"]) == ["city", "state", "zip"]
        assert db.session.query(Address).count() == 0

    def test_partial_update(self, client, auth_headers):
        address_id = client.post("/me/addresses", json=ADDRESS, headers=auth_headers).get_json()["address"]["id"]

        response = client.patch(f"/me/addresses/{address_id}", json={"number": "42"}, headers=auth_headers)
        assert response.status_code == 200
        updated = response.get_json()["address"]
        assert updated["number"] == "42"
        assert updated["city"] == "Cascavel"

    def test_empty_update_rejected(self, client, auth_headers):
        address_id = client.post("/me/addresses", json=ADDRESS, headers=auth_headers).get_json()["address"]["id"]
        response = client.patch(f"/me/addresses/{address_id}", json={}, headers=auth_headers)
        assert response.status_code == 400

    def test_delete(self, client, auth_headers):
        address_id = client.post("/me/addresses", json=ADDRESS, headers=auth_headers).get_json()["address"]["id"]
        assert client.delete(f"/me/addresses/{address_id}", headers=auth_headers).status_code == 204
        assert client.delete(f"/me/addresses/{address_id}", headers=auth_headers).status_code == 404

    def test_other_users_address_is_not_found(self, client, auth_headers, store):
        address_id = client.post("/me/addresses", json=ADDRESS, headers=auth_headers).get_json()["address"]["id"]
        other = other_user_headers(store)

        assert client.get("/me/addresses", headers=other).get_json()["addresses"] == []
        patch = client.patch(f"/me/addresses/{address_id}", json={"number": "1"}, headers=other)
        assert patch.status_code == 404
        assert client.delete(f"/me/addresses/{address_id}", headers=other).status_code == 404
        assert db.session.get(Address, address_id).number == "100"


class TestCheckoutWithSavedAddress:
    def test_saved_address_becomes_order_delivery(self, client, auth_headers, store, product_a, gateway):
        saved = {**ADDRESS, "state": "SP", "city": "Campinas"}
        address_id = client.post("/me/addresses", json=saved, headers=auth_headers).get_json()["address"]["id"]

        response = client.post(
            "/orders/checkout",
            json={"items": [{"productId": product_a.id, "quantity": 1}], "addressId": address_id},
            headers=auth_headers,
            base_url=STORE_URL,
        )

        assert response.status_code == 201
        body = response.get_json()
        # SP shipping
        assert body["totalCents"] == 1000 + 1800
        order = db.session.get(Order, body["orderId"])
        assert order.delivery.city == "Campinas"

        # The order keeps its copy after the address is deleted
        client.delete(f"/me/addresses/{address_id}", headers=auth_headers)
        db.session.refresh(order)
        assert order.delivery.city == "Campinas"

    def test_explicit_delivery_wins(self, client, auth_headers, store, product_a, gateway):
        address_id = client.post(
            "/me/addresses", json={**ADDRESS, "state": "SP"}, headers=auth_headers,
        ).get_json()["address"]["id"]

        response = client.post(
            "/orders/checkout",
            json={
                "items": [{"productId": product_a.id, "quantity": 1}],
                "addressId": address_id,
                "delivery": delivery_payload("PR"),
            },
            headers=auth_headers,
            base_url=STORE_URL,
        )
        assert response.get_json()["totalCents"] == 1000 + 1200

    def test_someone_elses_address_is_rejected(self, client, auth_headers, store, product_a, gateway):
        other = other_user_headers(store)
        address_id = client.post("/me/addresses", json=ADDRESS, headers=other).get_json()["address"]["id"]

        response = client.post(
            "/orders/checkout",
            json={"items": [{"productId": product_a.id, "quantity": 1}], "addressId": address_id},
            headers=auth_headers,
            base_url=STORE_URL,
        )

        assert response.status_code == 404
        assert response.get_json()["error"] == "address_not_found"
        assert db.session.query(Order).count() == 0
        assert gateway.billings == []
