"""
Inventory products bound to a catalog vendor.

Rows are written only by the catalog applier. A product is never deleted
when it disappears from its vendor catalog; its stock is zeroed and it is
marked delisted instead.
"""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base

class Product(Base):
    __tablename__ = "product"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String, unique=True, nullable=False, index=True)
    vendor = Column(String(48), nullable=True, index=True)

    # Catalog identity
    catalog_id = Column(String, nullable=True, index=True)
    variant_id = Column(String, nullable=True)

    # Projected attributes
    name = Column(String, nullable=False)
    brand = Column(String, nullable=True)
    model = Column(String, nullable=True)
    color = Column(String, nullable=True)
    size_label = Column(String, nullable=True)
    category = Column(String, nullable=False)
    usage = Column(String, nullable=True)
    supplier = Column(String, nullable=True)
    catalog_url = Column(String, nullable=True)

    # Set when the product disappears from its vendor catalog, cleared when it returns
    delisted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}', vendor='{self.vendor}', category='{self.category}')>"
