"""
Schemas for product and collection API endpoints.

Inputs are validated here before any remote call is attempted; the dumped
dicts are passed to the Shopify client as GraphQL ``ProductInput`` /
``CollectionInput`` objects.
"""

from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from app.schemas.base import BaseSchema


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class TitleMixin(BaseSchema):
    """Shared validation for title fields."""

    @field_validator('title', check_fields=False)
    @classmethod
    def validate_title(cls, v):
        if v is None:
            return v
        if not v.strip():
            raise ValueError('Title must not be blank')
        return v


class ProductCreate(TitleMixin):
    title: str = Field(..., max_length=255)
    description_html: Optional[str] = Field(None, alias="descriptionHtml")
    vendor: Optional[str] = None
    product_type: Optional[str] = Field(None, alias="productType")
    handle: Optional[str] = None
    tags: Optional[List[str]] = None
    status: Optional[ProductStatus] = None

    @field_validator('tags', mode='before')
    @classmethod
    def split_tags(cls, v):
        # "a, b" and ["a", "b"] are both accepted
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(',') if tag.strip()]
        return v


class ProductUpdate(ProductCreate):
    """All fields optional; at least one must be given."""
    title: Optional[str] = Field(None, max_length=255)

    @model_validator(mode='after')
    def require_a_field(self):
        if not self.model_fields_set:
            raise ValueError('At least one field must be provided')
        return self


class CollectionCreate(TitleMixin):
    title: str = Field(..., max_length=255)
    description_html: Optional[str] = Field(None, alias="descriptionHtml")
    handle: Optional[str] = None


class CollectionUpdate(CollectionCreate):
    title: Optional[str] = Field(None, max_length=255)

    @model_validator(mode='after')
    def require_a_field(self):
        if not self.model_fields_set:
            raise ValueError('At least one field must be provided')
        return self
