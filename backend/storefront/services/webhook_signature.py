# Overview: HMAC-SHA256 verification of payment provider webhook bodies.

"""
Webhook Signature Verification

The provider signs the raw request body with the store's webhook secret:

    X-Abacate-Signature: sha256=<hex>   (or just <hex>)

SECURITY:
- Always verify the exact bytes received. Parsing and re-serializing JSON
  before verification changes the bytes and breaks the signature.
- The secret is passed in by the caller (resolved per store), never read
  from global configuration.
- Anything other than 64 hex digits fails before the constant-time
  comparison.
"""

import hashlib
import hmac
import re

SIGNATURE_PREFIX = "sha256="
# SHA-256 digest, 32 bytes as hex
HEX_DIGEST_RE = re.compile(r"[0-9a-fA-F]{64}")


def parse_incoming_signature(header_value) -> str | None:
    """Normalize the signature header to a bare hex string (or None)."""
    if not isinstance(header_value, str):
        return None
    value = header_value.strip()
    if value.startswith(SIGNATURE_PREFIX):
        value = value[len(SIGNATURE_PREFIX):]
    return value or None


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, header_value, secret: str) -> bool:
    incoming = parse_incoming_signature(header_value)
    if incoming is None or not secret:
        return False

    if not HEX_DIGEST_RE.fullmatch(incoming):
        return False
    incoming_bytes = bytes.fromhex(incoming)
    expected_bytes = bytes.fromhex(compute_signature(raw_body, secret))

    if len(incoming_bytes) != len(expected_bytes):
        return False
    return hmac.compare_digest(incoming_bytes, expected_bytes)
