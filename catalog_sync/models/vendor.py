"""
Vendor registry records.

A vendor is onboarded once (immutable slug) and may carry a single
integration describing where its catalog comes from.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


class Vendor(Base):
    __tablename__ = "vendor"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(48), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    integration = relationship(
        "VendorIntegration",
        back_populates="vendor",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Vendor(id={self.id}, slug='{self.slug}', name='{self.name}')>"


class VendorIntegration(Base):
    __tablename__ = "vendor_integration"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendor.id", ondelete="CASCADE"), unique=True, nullable=False)

    type = Column(String, nullable=False)  # SCRAPER | API
    scraper_path = Column(String, nullable=True)
    api_base_url = Column(String, nullable=True)
    api_auth_type = Column(String, nullable=True)
    api_key = Column(String, nullable=True)

    # Outcome of the last connection test
    last_test_at = Column(DateTime(timezone=True), nullable=True)
    last_test_ok = Column(Boolean, nullable=True)
    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    vendor = relationship("Vendor", back_populates="integration")

    def __repr__(self):
        return f"<VendorIntegration(id={self.id}, vendor_id={self.vendor_id}, type='{self.type}')>"
