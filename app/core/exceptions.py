from typing import Any, Dict, List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ValidationError(BaseServiceError):
    """Raised when input fails validation before any remote call is made."""
    pass

class NotFoundError(BaseServiceError):
    """Raised when the platform confirms a resource does not exist."""

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type.capitalize()} with ID {resource_id} not found")

class ProductNotFoundError(NotFoundError):
    """Raised when product is not found."""

    def __init__(self, resource_id: str):
        super().__init__("product", resource_id)

class CollectionNotFoundError(NotFoundError):
    """Raised when collection is not found."""

    def __init__(self, resource_id: str):
        super().__init__("collection", resource_id)

class UpstreamError(BaseServiceError):
    """Raised when the storefront platform or its transport fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)

class BreakerOpenError(UpstreamError):
    """Raised without attempting the call because the circuit is open."""

    reason = "circuit_open"

    def __init__(self, breaker_name: str, retry_after: float = 0.0):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. Retry in {retry_after:.1f}s"
        )

class ShopifyAPIError(BaseServiceError):
    """Raised when Shopify API calls fail after retries."""
    pass

class ShopifyGraphQLError(ShopifyAPIError):
    """Raised when a GraphQL response carries an errors array."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        message = "GraphQL query failed with errors:\n"
        for error in errors:
            msg = error.get('message', 'Unknown error')
            path = error.get('path', [])
            message += f"- Message: {msg}, Path: {path}\n"
        super().__init__(message.rstrip())

class ShopifyUserError(ShopifyAPIError):
    """Raised when a mutation returns userErrors."""

    def __init__(self, operation: str, user_errors: List[Dict[str, Any]]):
        self.operation = operation
        self.user_errors = user_errors
        details = "; ".join(
            f"{'.'.join(err.get('field') or []) or '-'}: {err.get('message')}" for err in user_errors
        )
        super().__init__(f"{operation} rejected: {details}")

class ShopifyAuthError(BaseServiceError):
    """Raised when the OAuth handshake with a shop fails."""
    pass

class ContentfulAPIError(BaseServiceError):
    """Raised when Contentful Management API calls fail."""
    pass

class QueueError(BaseServiceError):
    """Raised when a job cannot be enqueued."""
    pass

class WebhookError(BaseServiceError):
    """Base exception for webhook handling errors."""
    pass

class WebhookValidationError(WebhookError):
    """Raised when a webhook payload is malformed. No side effects have happened yet."""
    pass

class WebhookProcessingError(WebhookError):
    """Raised when anything after validation fails while handling a webhook."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
