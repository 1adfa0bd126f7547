"""
Base schemas with common functionality.
"""
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict

class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_graphql_input(self) -> Dict[str, Any]:
        """
        Dump the fields that were actually provided, using the GraphQL
        (camelCase) aliases Shopify expects.
        """
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
