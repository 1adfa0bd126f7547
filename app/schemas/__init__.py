"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema

# Product and collection inputs
from .product import CollectionCreate, CollectionUpdate, ProductCreate, ProductStatus, ProductUpdate

# Webhooks
from .webhook import TOPIC_MAP, WebhookEvent
