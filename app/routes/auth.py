from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from app.dependencies import get_auth_service
from app.services.shopify.auth import ShopifyAuthService

router = APIRouter(prefix="/auth/shopify", tags=["auth"])


@router.get("/login")
async def login(
    shop: str = Query(..., description="<shop>.myshopify.com"),
    auth: ShopifyAuthService = Depends(get_auth_service),
):
    """Redirect the merchant to Shopify's authorization page"""
    return RedirectResponse(url=await auth.build_authorization_url(shop), status_code=302)


@router.get("/callback")
async def callback(request: Request, auth: ShopifyAuthService = Depends(get_auth_service)):
    """Shopify redirects here after the merchant approves the install"""
    result = await auth.handle_callback(request.query_params)
    return {"status": "authenticated", **result}


@router.post("/logout")
async def logout(
    shop: str = Query(...),
    auth: ShopifyAuthService = Depends(get_auth_service),
):
    removed = await auth.logout(shop)
    return {"status": "logged_out", "shop": shop, "session_removed": removed}
