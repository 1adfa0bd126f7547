"""
Basic security for the management API and the Shopify webhook endpoint.
"""

import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.core.config import Settings, get_settings, get_webhook_secret
from app.services.shopify.utils import verify_webhook_hmac

security = HTTPBasic()


def get_current_username(
    credentials: HTTPBasicCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Simple HTTP Basic Auth - checks username/password from settings
    """
    correct_username = settings.BASIC_AUTH_USERNAME
    correct_password = settings.BASIC_AUTH_PASSWORD

    # If no password is set in production, refuse rather than fall back
    if not correct_password and settings.ENVIRONMENT == "production":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Basic auth password not configured"
        )

    # In development, allow a default password
    if not correct_password:
        correct_password = "changeme"

    # Verify credentials
    is_correct_username = secrets.compare_digest(
        credentials.username.encode("utf8"),
        correct_username.encode("utf8")
    )
    is_correct_password = secrets.compare_digest(
        credentials.password.encode("utf8"),
        correct_password.encode("utf8")
    )

    if not (is_correct_username and is_correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def require_auth():
    """
    Dependency to require authentication
    Usage: @router.get("/", dependencies=[require_auth()])
    """
    return Depends(get_current_username)


async def verify_shopify_webhook(request: Request, webhook_secret: str = Depends(get_webhook_secret)) -> bytes:
    """Verify X-Shopify-Hmac-Sha256 against the raw body and hand the body on."""
    signature = request.headers.get("X-Shopify-Hmac-Sha256")
    if not signature:
        raise HTTPException(status_code=401, detail="No signature provided")

    body = await request.body()
    if not verify_webhook_hmac(body, signature, webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid signature")
    return body
