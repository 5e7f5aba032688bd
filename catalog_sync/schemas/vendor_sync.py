"""
Request and response schemas for the vendor sync API.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from catalog_sync.core.enums import IntegrationType, RunStatus
from catalog_sync.core.utils import ensure_utc, to_iso
from catalog_sync.schemas.base import CamelSchema

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


class SyncRequest(CamelSchema):
    """Body of POST /vendor-sync/{slug}/preview|apply"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")

    source_path: Optional[str] = Field(default=None, min_length=1)
    items: Optional[List[Any]] = None
    limit: Optional[int] = Field(default=None, gt=0, le=500)

    @field_validator("items", mode="before")
    @classmethod
    def _wrap_single_item(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value]
        return value

    @model_validator(mode="after")
    def _require_source(self):
        if self.items is None and not self.source_path:
            raise ValueError("Either items[] or sourcePath is required")
        return self

    def source_meta(self) -> Dict[str, Any]:
        if not self.items and self.source_path:
            return {"type": "sourcePath", "value": self.source_path}
        return {"type": "inline", "count": len(self.items or [])}


class RunCounts(CamelSchema):
    total: Optional[int] = None
    created: Optional[int] = None
    updated: Optional[int] = None
    removed: Optional[int] = None
    unchanged: Optional[int] = None


class RunRead(CamelSchema):
    """External representation of a VendorSyncRun"""
    id: str
    vendor: str
    status: Literal["running", "success", "error"]
    actor: Optional[str] = None
    dry_run: bool
    source_path: Optional[str] = None
    started_at: str
    completed_at: Optional[str] = None
    counts: RunCounts
    hash: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    updated_at: str
    duration_ms: Optional[int] = None

    @classmethod
    def from_run(cls, run) -> "RunRead":
        try:
            label = RunStatus(run.status).label
        except ValueError:
            label = "error"
        return cls(
            id=run.id,
            vendor=run.vendor,
            status=label,
            actor=run.actor,
            dry_run=bool(run.dry_run),
            source_path=run.source_path,
            started_at=to_iso(run.started_at),
            completed_at=to_iso(run.finished_at),
            counts=RunCounts(**(run.counts or {})),
            hash=run.hash,
            error=run.error,
            metadata=run.run_metadata,
            updated_at=to_iso(run.updated_at or run.started_at),
            duration_ms=run.duration_ms,
        )


class RunPage(CamelSchema):
    items: List[RunRead]
    page: int = 1
    page_size: int
    total_items: int
    has_more: bool
    next_cursor: Optional[str] = None


class ObservabilityQuery(CamelSchema):
    """Query of GET /vendor-sync/observability"""
    vendor_id: str = Field(min_length=1)
    start: datetime
    end: datetime

    @field_validator("vendor_id", mode="before")
    @classmethod
    def _slug(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _ordered(self):
        if self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class RunRange(CamelSchema):
    start: str
    end: str


class StatusCounts(CamelSchema):
    success: int = 0
    error: int = 0
    running: int = 0


class ObservabilityWindow(CamelSchema):
    vendor_id: str
    range: RunRange
    page_size: int
    total_runs: int
    counts: StatusCounts
    latest_run_at: Optional[str] = None
    has_more: bool
    next_cursor: Optional[str] = None
    runs: List[RunRead]


class Last24h(CamelSchema):
    total: int = 0
    success: int = 0
    failed: int = 0
    avg_duration_ms: int = 0


class InProgressRun(CamelSchema):
    vendor: str
    started_at: str
    run_id: str
    mode: Literal["preview", "apply"]


class Overview(CamelSchema):
    last24h: Last24h = Field(alias="last24h")
    in_progress: List[InProgressRun]


class VendorHistory(CamelSchema):
    vendor: str
    label: str
    runs: List[RunRead]


class VendorStateRead(CamelSchema):
    vendor: str
    last_run_at: Optional[str] = None
    last_run_by: Optional[str] = None
    last_duration_ms: Optional[int] = None
    total_items: Optional[int] = None
    last_source: Optional[str] = None
    last_hash: Optional[str] = None
    last_error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_state(cls, state) -> Optional["VendorStateRead"]:
        if state is None:
            return None
        return cls(
            vendor=state.vendor,
            last_run_at=to_iso(state.last_run_at),
            last_run_by=state.last_run_by,
            last_duration_ms=state.last_duration_ms,
            total_items=state.total_items,
            last_source=state.last_source,
            last_hash=state.last_hash,
            last_error=state.last_error,
            created_at=to_iso(state.created_at),
            updated_at=to_iso(state.updated_at),
        )


# Vendor onboarding ---------------------------------------------------------

class IntegrationCredentials(CamelSchema):
    scraper_path: Optional[str] = None
    api_base_url: Optional[str] = None
    api_key: Optional[str] = None


class VendorCreate(CamelSchema):
    """Body of POST /vendor-sync/vendors"""
    slug: str
    name: str = Field(min_length=1)
    integration_type: IntegrationType = IntegrationType.SCRAPER
    credentials: Optional[IntegrationCredentials] = None

    @field_validator("slug", mode="before")
    @classmethod
    def _normalize_slug(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("slug")
    @classmethod
    def _slug_shape(cls, value: str) -> str:
        if not 1 <= len(value) <= 48 or not SLUG_PATTERN.match(value):
            raise ValueError("Slug must be 1-48 characters of a-z, 0-9 and '-'")
        return value

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class IntegrationRead(CamelSchema):
    id: int
    type: str
    scraper_path: Optional[str] = None
    api_base_url: Optional[str] = None
    api_auth_type: Optional[str] = None
    has_api_key: bool = False
    last_test_at: Optional[str] = None
    last_test_ok: Optional[bool] = None
    error: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    @classmethod
    def from_integration(cls, integration) -> Optional["IntegrationRead"]:
        if integration is None:
            return None
        meta = integration.meta if isinstance(integration.meta, dict) else None
        error = meta.get("error") if meta and isinstance(meta.get("error"), str) else None
        return cls(
            id=integration.id,
            type=integration.type,
            scraper_path=integration.scraper_path,
            api_base_url=integration.api_base_url,
            api_auth_type=integration.api_auth_type,
            has_api_key=bool(integration.api_key),
            last_test_at=to_iso(integration.last_test_at),
            last_test_ok=integration.last_test_ok,
            error=error,
            meta=meta,
        )


class VendorRead(CamelSchema):
    id: Optional[int] = None
    slug: str
    name: str
    adapter_key: Optional[str] = None
    registered: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    integration: Optional[IntegrationRead] = None
    state: Optional[VendorStateRead] = None


class ConnectionTestResult(CamelSchema):
    ok: bool
    vendor: str
    vendor_name: str
    integration_id: Optional[int] = None
    type: Optional[str] = None
    checked_at: str
    meta: Dict[str, Any] = Field(default_factory=dict)


class RegistryTestSummary(CamelSchema):
    tested: int = 0
    passed: int = 0
    failed: int = 0
    failures: List[Dict[str, str]] = Field(default_factory=list)
