from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


class VendorSyncState(Base):
    """
    Last-good sync snapshot per vendor.

    Success runs refresh every field and clear last_error; failed runs only
    set last_error.
    """
    __tablename__ = "vendor_sync_state"

    vendor = Column(String(48), primary_key=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_run_by = Column(String, nullable=True)
    last_duration_ms = Column(Integer, nullable=True)
    total_items = Column(Integer, nullable=True)
    last_source = Column(String, nullable=True)
    last_hash = Column(String(64), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<VendorSyncState(vendor='{self.vendor}', last_hash='{self.last_hash}', last_error={self.last_error!r})>"
