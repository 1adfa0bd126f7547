from typing import Any, Dict

from fastapi import APIRouter, Depends, Response

from app.dependencies import get_collection_service
from app.schemas.product import CollectionCreate, CollectionUpdate
from app.services.product_service import CollectionService

router = APIRouter(prefix="/collections", tags=["collections"])


@router.get("/{collection_id}")
async def get_collection(
    collection_id: str,
    service: CollectionService = Depends(get_collection_service),
) -> Dict[str, Any]:
    return await service.get_by_id(collection_id)


@router.post("", status_code=201)
async def create_collection(
    collection: CollectionCreate,
    service: CollectionService = Depends(get_collection_service),
) -> Dict[str, Any]:
    return await service.create(collection)


@router.put("/{collection_id}")
async def update_collection(
    collection_id: str,
    collection: CollectionUpdate,
    service: CollectionService = Depends(get_collection_service),
) -> Dict[str, Any]:
    return await service.update(collection_id, collection)


@router.delete("/{collection_id}", status_code=204)
async def delete_collection(
    collection_id: str,
    service: CollectionService = Depends(get_collection_service),
):
    await service.delete(collection_id)
    return Response(status_code=204)
