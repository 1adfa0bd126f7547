"""
Shared enums and constants used across the application.
"""

from enum import Enum


class ResourceType(str, Enum):
    PRODUCT = "product"
    COLLECTION = "collection"

    @property
    def gid_name(self) -> str:
        # "product" -> "Product", used in gid://shopify/Product/123
        return self.value.capitalize()


class WebhookEventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class JobName(str, Enum):
    SEND_EMAIL = "send_email"
    GENERATE_REPORT = "generate_report"


# Cache key prefixes are the resource type values: "product:<id>", "collection:<id>"
OAUTH_STATE_PREFIX = "oauth_state"
FAILED_JOBS_KEY = "jobs:failed"
REPORT_TYPES = ("catalogue",)
