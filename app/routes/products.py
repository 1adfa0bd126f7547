from typing import Any, Dict

from fastapi import APIRouter, Depends, Response

from app.dependencies import get_product_service
from app.schemas.product import ProductCreate, ProductUpdate
from app.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
) -> Dict[str, Any]:
    """Cached read; falls through to Shopify on a miss"""
    return await service.get_by_id(product_id)


@router.post("", status_code=201)
async def create_product(
    product: ProductCreate,
    service: ProductService = Depends(get_product_service),
) -> Dict[str, Any]:
    return await service.create(product)


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    product: ProductUpdate,
    service: ProductService = Depends(get_product_service),
) -> Dict[str, Any]:
    return await service.update(product_id, product)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
):
    await service.delete(product_id)
    return Response(status_code=204)
