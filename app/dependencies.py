"""
FastAPI dependencies. Every shared collaborator is built once in the
lifespan (app.main) and read back from ``app.state`` here.
"""

from fastapi import Request

from app.core.resilience import BreakerRegistry
from app.services.cache_service import CacheService
from app.services.product_service import CollectionService, ProductService
from app.services.queue_service import QueueService
from app.services.shopify.auth import ShopifyAuthService
from app.services.webhook_processor import WebhookProcessor


def get_product_service(request: Request) -> ProductService:
    return request.app.state.product_service


def get_collection_service(request: Request) -> CollectionService:
    return request.app.state.collection_service


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


def get_auth_service(request: Request) -> ShopifyAuthService:
    return request.app.state.auth_service


def get_breakers(request: Request) -> BreakerRegistry:
    return request.app.state.breakers


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_queue(request: Request) -> QueueService:
    return request.app.state.queue
