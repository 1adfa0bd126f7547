from .shop_session import ShopSession

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'ShopSession',
]
