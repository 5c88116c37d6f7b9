# Overview: HTTP client for the AbacatePay billing API; one instance per store credential.

"""
Payment Gateway Client

WHY: The storefront never moves money. It asks the provider for a customer
profile and a billing link, then waits for webhooks.

MULTI-TENANT: Every client is built with the API key of one store. There is
no module-level credential, so one store can never bill with another
store's key.

FAILURE CONTRACT:
- Non-2xx status, transport errors, non-JSON bodies and a non-null "error"
  field in the {data, error} envelope all raise GatewayError.
- No retries here. The caller decides whether to retry or compensate.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
from flask import current_app


class GatewayError(Exception):
    """Raised when the payment provider call fails."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GatewayNotConfiguredError(GatewayError):
    """Raised when a store has no provider API key."""


@dataclass
class CustomerInput:
    name: str
    email: str
    tax_id: str
    cellphone: str

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "taxId": self.tax_id,
            "cellphone": self.cellphone,
        }


@dataclass
class Customer:
    id: str
    metadata: dict = field(default_factory=dict)


@dataclass
class BillingProduct:
    external_id: str
    name: str
    price: int  # cents
    quantity: int
    description: str | None = None

    def to_payload(self) -> dict:
        payload = {
            "externalId": self.external_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass
class BillingInput:
    customer_id: str
    products: list[BillingProduct]
    return_url: str
    completion_url: str
    external_id: str | None = None
    coupons: list[str] | None = None
    allow_coupons: bool = False
    frequency: str = "ONE_TIME"
    methods: list[str] = field(default_factory=lambda: ["PIX"])

    def to_payload(self) -> dict:
        payload = {
            "frequency": self.frequency,
            "methods": list(self.methods),
            "customerId": self.customer_id,
            "products": [p.to_payload() for p in self.products],
            "allowCoupons": self.allow_coupons,
            "returnUrl": self.return_url,
            "completionUrl": self.completion_url,
        }
        if self.coupons:
            payload["coupons"] = list(self.coupons)
        if self.external_id is not None:
            payload["externalId"] = self.external_id
        return payload


@dataclass
class Billing:
    id: str
    url: str | None
    status: str | None = None
    amount: int | None = None


@dataclass
class CouponInput:
    code: str
    max_redeems: int
    discount_kind: str  # PERCENTAGE or FIXED
    discount: int
    notes: str | None = None
    metadata: dict | None = None

    def to_payload(self) -> dict:
        payload = {
            "code": self.code,
            "maxRedeems": self.max_redeems,
            "discountKind": self.discount_kind,
            "discount": self.discount,
        }
        if self.notes:
            payload["notes"] = self.notes
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


class GatewayClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not api_key:
            raise GatewayNotConfiguredError("Payment gateway API key is not configured")
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GatewayClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        try:
            response = self._http.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise GatewayError(f"AbacatePay {path} request failed: {exc}") from exc

        if not response.is_success:
            raise GatewayError(
                f"AbacatePay {path} {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            envelope = response.json()
        except ValueError as exc:
            raise GatewayError(
                f"AbacatePay {path} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(envelope, dict):
            raise GatewayError(
                f"AbacatePay {path} returned an unexpected body",
                status_code=response.status_code,
                body=response.text,
            )

        if envelope.get("error"):
            raise GatewayError(
                f"AbacatePay API error: {json.dumps(envelope['error'])}",
                status_code=response.status_code,
                body=response.text,
            )
        return envelope.get("data")

    def create_customer(self, customer: CustomerInput) -> Customer:
        """POST /customer/create"""
        data = self._request("POST", "/customer/create", customer.to_payload())
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayError("AbacatePay /customer/create returned no customer id")
        return Customer(id=data["id"], metadata=data.get("metadata") or {})

    def create_billing(self, billing: BillingInput) -> Billing:
        """POST /billing/create"""
        data = self._request("POST", "/billing/create", billing.to_payload())
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayError("AbacatePay /billing/create returned no billing id")
        return Billing(
            id=data["id"],
            url=data.get("url"),
            status=data.get("status"),
            amount=data.get("amount"),
        )

    def create_coupon(self, coupon: CouponInput) -> dict:
        """POST /coupon/create (input wrapped in a "data" object)"""
        return self._request("POST", "/coupon/create", {"data": coupon.to_payload()}) or {}

    def list_coupons(self) -> list[dict]:
        """GET /coupon/list"""
        return self._request("GET", "/coupon/list") or []


def client_for_store(store) -> GatewayClient:
    """Build a client bound to one store's API key."""
    if not store.gateway_api_key:
        raise GatewayNotConfiguredError(f"Store {store.id} has no payment gateway API key")
    return GatewayClient(
        store.gateway_api_key,
        base_url=current_app.config["ABACATEPAY_BASE_URL"],
        timeout=current_app.config["GATEWAY_TIMEOUT_SECONDS"],
    )
