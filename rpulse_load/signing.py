"""
GitHub‑style ``X-Hub-Signature-256`` helpers.

The signature is an HMAC‑SHA256 over the *exact* request body bytes, rendered
as ``sha256=<hexdigest>``. Sign the form‑encoded body, never the bare JSON.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "X-Hub-Signature-256"
_PREFIX = "sha256="


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(body: str | bytes, secret: str | bytes) -> str:
    """Return the ``sha256=<hex>`` header value for *body*."""
    mac = hmac.new(_as_bytes(secret), _as_bytes(body), hashlib.sha256)
    return f"{_PREFIX}{mac.hexdigest()}"


def verify(body: str | bytes, header: str, secret: str | bytes) -> bool:
    """Constant‑time check of *header* against *body*.

    Raises ``ValueError`` when *header* is not valid hex (with or without the
    ``sha256=`` prefix).
    """
    received_hex = header[len(_PREFIX):] if header.startswith(_PREFIX) else header
    received = bytes.fromhex(received_hex)
    expected = hmac.new(_as_bytes(secret), _as_bytes(body), hashlib.sha256).digest()
    return hmac.compare_digest(expected, received)
