"""
Vendor sync run history.

One VendorSyncRun row is written per dispatch (preview or apply). It is
created Pending and moves exactly once to Success or Failed; terminal rows
are never modified again. VendorSyncRunDiff keeps a bounded summary of the
diff that the run produced.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.sql import func

from catalog_sync.core.enums import RunStatus
from catalog_sync.core.utils import utcnow
from catalog_sync.database import Base


def _new_run_id() -> str:
    return str(uuid.uuid4())


class VendorSyncRun(Base):
    __tablename__ = "vendor_sync_run"
    __table_args__ = (
        Index("ix_vendor_sync_run_vendor_started", "vendor", "started_at"),
    )

    id = Column(String(64), primary_key=True, default=_new_run_id)
    vendor = Column(String(48), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=RunStatus.PENDING.value, index=True)
    actor = Column(String, nullable=True)
    dry_run = Column(Boolean, nullable=False, default=False)
    source_path = Column(String, nullable=True)
    hash = Column(String(64), nullable=True)

    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    # {"total", "created", "updated", "unchanged", "removed"}
    counts = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    run_metadata = Column("metadata", JSON, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.PENDING.value

    def __repr__(self):
        return (f"<VendorSyncRun(id='{self.id}', vendor='{self.vendor}', status='{self.status}', "
                f"dry_run={self.dry_run})>")


class VendorSyncRunDiff(Base):
    __tablename__ = "vendor_sync_run_diff"

    run_id = Column(String(64), ForeignKey("vendor_sync_run.id", ondelete="CASCADE"), primary_key=True)
    aggregates = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<VendorSyncRunDiff(run_id='{self.run_id}')>"
