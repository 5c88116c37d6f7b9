# Overview: Flat-rate shipping fee lookup by destination state.

"""
Simple regional shipping table.

- Parana (PR): R$ 12,00
- Any other state: R$ 18,00
- Free shipping in PR for subtotals from R$ 150,00

Replace with a carrier integration when one exists; callers only depend on
calculate_shipping's signature.
"""

BASE_PR_CENTS = 1200
BASE_OUT_PR_CENTS = 1800
FREE_SHIPPING_THRESHOLD_PR_CENTS = 15000


def _is_parana(state: str | None) -> bool:
    return (state or "").strip().upper() == "PR"


def calculate_shipping(*, state: str, city: str | None = None, zip_code: str | None = None, subtotal_cents: int = 0) -> int:
    """Shipping fee in cents for a destination. city/zip reserved for carrier quotes."""
    in_pr = _is_parana(state)

    if in_pr and subtotal_cents >= FREE_SHIPPING_THRESHOLD_PR_CENTS:
        return 0

    return BASE_PR_CENTS if in_pr else BASE_OUT_PR_CENTS
