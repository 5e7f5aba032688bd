from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base

class StoreStock(Base):
    """Stock level of one product in one store."""
    __tablename__ = "store_stock"
    __table_args__ = (
        UniqueConstraint("store_id", "product_id", name="uq_store_stock_store_product"),
        CheckConstraint("qty >= 0", name="ck_store_stock_qty_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(String, nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    qty = Column(Integer, nullable=False, default=0)
    barcode = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<StoreStock(id={self.id}, store_id='{self.store_id}', product_id={self.product_id}, qty={self.qty})>"
