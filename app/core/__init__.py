"""
Core module exports.
"""
from .enums import (
    CircuitState,
    JobName,
    ResourceType,
    WebhookEventType,
)

from .exceptions import (
    BaseServiceError,
    BreakerOpenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
    WebhookProcessingError,
    WebhookValidationError,
)
