"""
Shopify OAuth install flow.

- build_authorization_url: stores a one-time state nonce in the cache and
  returns the shop's authorize URL.
- handle_callback: checks the query HMAC and nonce, exchanges the code for
  an offline access token and upserts it into ``shop_sessions``. When the
  shop is the one this service is configured for, the live GraphQL client
  starts using the new token straight away.
- logout: forgets a shop's stored token.
"""

import logging
import secrets
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy import delete, select

from app.core.config import Settings
from app.core.enums import OAUTH_STATE_PREFIX
from app.core.exceptions import ShopifyAuthError
from app.models.shop_session import ShopSession
from app.services.cache_service import CacheService
from app.services.shopify.client import ShopifyGraphQLClient
from app.services.shopify.utils import is_valid_shop_domain, verify_query_hmac

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600


class ShopifyAuthService:

    def __init__(
        self,
        settings: Settings,
        cache: CacheService,
        session_factory,
        shopify_client: Optional[ShopifyGraphQLClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.session_factory = session_factory
        self.shopify_client = shopify_client
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.SHOPIFY_REQUEST_TIMEOUT)

    @property
    def redirect_uri(self) -> str:
        return f"{self.settings.SHOPIFY_APP_URL.rstrip('/')}/auth/shopify/callback"

    @staticmethod
    def _state_key(state: str) -> str:
        return f"{OAUTH_STATE_PREFIX}:{state}"

    def _require_shop(self, shop: Optional[str]) -> str:
        if not is_valid_shop_domain(shop):
            raise ShopifyAuthError(f"Invalid shop domain: {shop!r}")
        return shop.strip().lower()

    async def build_authorization_url(self, shop: str) -> str:
        shop = self._require_shop(shop)
        if not self.settings.SHOPIFY_API_KEY:
            raise ShopifyAuthError("SHOPIFY_API_KEY is not configured")

        state = secrets.token_urlsafe(16)
        await self.cache.set(self._state_key(state), shop, ttl_seconds=STATE_TTL_SECONDS)

        query = urlencode({
            "client_id": self.settings.SHOPIFY_API_KEY,
            "scope": self.settings.SHOPIFY_SCOPES,
            "redirect_uri": self.redirect_uri,
            "state": state,
        })
        logger.info(f"Starting OAuth install for {shop}")
        return f"https://{shop}/admin/oauth/authorize?{query}"

    async def handle_callback(self, params: Mapping[str, str]) -> Dict[str, Any]:
        """
        Complete the install.

        Raises:
            ShopifyAuthError: bad shop, HMAC, state or a failed token exchange
        """
        params = dict(params)
        shop = self._require_shop(params.get("shop"))

        if not verify_query_hmac(params, self.settings.SHOPIFY_API_SECRET or ""):
            raise ShopifyAuthError("OAuth callback HMAC validation failed")

        state = params.get("state") or ""
        expected_shop = await self.cache.get(self._state_key(state)) if state else None
        if expected_shop != shop:
            raise ShopifyAuthError("OAuth state is missing, expired or for another shop")
        await self.cache.delete(self._state_key(state))

        code = params.get("code")
        if not code:
            raise ShopifyAuthError("OAuth callback is missing the authorization code")

        token_data = await self._exchange_code(shop, code)
        access_token = token_data["access_token"]
        scope = token_data.get("scope")

        await self._store_session(shop, access_token, scope)

        configured_shop = (self.settings.SHOPIFY_SHOP_URL or "").lower()
        if self.shopify_client is not None and (not configured_shop or configured_shop == shop):
            self.shopify_client.set_access_token(access_token, shop)

        logger.info(f"Authenticated and stored access token for shop: {shop}")
        return {"shop": shop, "scope": scope}

    async def _exchange_code(self, shop: str, code: str) -> Dict[str, Any]:
        url = f"https://{shop}/admin/oauth/access_token"
        try:
            response = await self._http.post(url, json={
                "client_id": self.settings.SHOPIFY_API_KEY,
                "client_secret": self.settings.SHOPIFY_API_SECRET,
                "code": code,
            })
        except httpx.RequestError as e:
            logger.error(f"Token exchange with {shop} failed: {e}")
            raise ShopifyAuthError(f"Token exchange failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Token exchange with {shop} returned {response.status_code}: {response.text}")
            raise ShopifyAuthError(f"Token exchange failed with status {response.status_code}")

        data = response.json()
        if not data.get("access_token"):
            raise ShopifyAuthError("Token exchange response did not include an access token")
        return data

    async def _store_session(self, shop: str, access_token: str, scope: Optional[str]) -> None:
        async with self.session_factory() as session:
            result = await session.execute(select(ShopSession).where(ShopSession.shop == shop))
            record = result.scalar_one_or_none()
            if record is None:
                session.add(ShopSession(shop=shop, access_token=access_token, scope=scope))
            else:
                record.access_token = access_token
                record.scope = scope
            await session.commit()

    async def get_access_token(self, shop: str) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(select(ShopSession.access_token).where(ShopSession.shop == shop))
            return result.scalar_one_or_none()

    async def logout(self, shop: str) -> bool:
        """Delete the stored session. Returns False when there was none."""
        shop = self._require_shop(shop)
        async with self.session_factory() as session:
            result = await session.execute(delete(ShopSession).where(ShopSession.shop == shop))
            await session.commit()
        removed = bool(result.rowcount)
        logger.info(f"Logged out shop {shop} (session {'removed' if removed else 'not found'})")
        return removed

    async def restore_configured_shop(self) -> bool:
        """
        At startup, pick up a token stored by an earlier install when no
        SHOPIFY_ADMIN_API_ACCESS_TOKEN is configured.
        """
        shop = self.settings.SHOPIFY_SHOP_URL
        if not shop or self.settings.SHOPIFY_ADMIN_API_ACCESS_TOKEN or self.shopify_client is None:
            return False
        token = await self.get_access_token(shop.lower())
        if token:
            self.shopify_client.set_access_token(token, shop)
            return True
        return False

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()
