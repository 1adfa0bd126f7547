# app/models/shop_session.py
from sqlalchemy import Column, DateTime, Integer, String, Text, func

from ..database import Base


class ShopSession(Base):
    """Offline access token granted by a shop during the OAuth install."""
    __tablename__ = "shop_sessions"

    id = Column(Integer, primary_key=True)
    shop = Column(String(255), nullable=False, unique=True, index=True)  # <name>.myshopify.com
    access_token = Column(Text, nullable=False)
    scope = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ShopSession(shop='{self.shop}', scope='{self.scope}')>"
