"""Utility helpers for Shopify ids, snapshots and signatures."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any, Mapping, Optional

from app.core.enums import ResourceType

GID_PREFIX = "gid://shopify/"


def to_legacy_id(resource_id: Any) -> str:
    """Return the numeric/legacy part of an id: "gid://shopify/Product/42" -> "42"."""
    raw = str(resource_id).strip()
    if raw.startswith(GID_PREFIX):
        raw = raw.rsplit("/", 1)[-1]
    # Strip query-string suffixes Shopify sometimes appends to GIDs
    return raw.split("?", 1)[0]


def to_gid(resource_type: ResourceType, resource_id: Any) -> str:
    raw = str(resource_id).strip()
    if raw.startswith(GID_PREFIX):
        return raw
    return f"{GID_PREFIX}{resource_type.gid_name}/{raw}"


def cache_key(resource_type: ResourceType, resource_id: Any) -> str:
    """Cache key for a resource snapshot: "<resource-type>:<legacy id>"."""
    return f"{resource_type.value}:{to_legacy_id(resource_id)}"


def verify_webhook_hmac(body: bytes, received_hmac: Optional[str], secret: str) -> bool:
    """Check X-Shopify-Hmac-Sha256: base64(HMAC-SHA256(secret, raw body))."""
    if not received_hmac or not secret:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, received_hmac.strip())


def verify_query_hmac(params: Mapping[str, str], secret: str) -> bool:
    """Check the ``hmac`` query parameter Shopify adds to OAuth redirects.

    The message is every other parameter sorted by key and joined as
    ``key=value`` pairs with ``&``; the digest is hex HMAC-SHA256.
    """
    received = params.get("hmac")
    if not received or not secret:
        return False
    message = "&".join(
        f"{key}={value}" for key, value in sorted(params.items()) if key not in ("hmac", "signature")
    )
    expected = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


def is_valid_shop_domain(shop: Optional[str]) -> bool:
    if not shop:
        return False
    shop = shop.strip().lower()
    if not shop.endswith(".myshopify.com"):
        return False
    name = shop[: -len(".myshopify.com")]
    return bool(name) and all(ch.isalnum() or ch == "-" for ch in name)
