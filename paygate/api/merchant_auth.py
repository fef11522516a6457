"""Verification of the gateways' Basic authorization on merchant callbacks."""
from __future__ import annotations

import base64
import binascii
import hmac


def verify_merchant_authorization(header: str | None, *, login: str, key: str | None) -> bool:
    """Check ``Authorization: Basic base64(login:key)`` against one gateway's credentials.

    Always passes when no key is configured for the gateway.
    """
    if not key:
        return True
    if not header:
        return False

    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded.strip():
        return False
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False

    presented_login, separator, presented_key = decoded.partition(":")
    if not separator:
        return False
    login_ok = hmac.compare_digest(presented_login.encode("utf-8"), login.encode("utf-8"))
    key_ok = hmac.compare_digest(presented_key.encode("utf-8"), key.encode("utf-8"))
    return login_ok and key_ok


__all__ = ["verify_merchant_authorization"]
