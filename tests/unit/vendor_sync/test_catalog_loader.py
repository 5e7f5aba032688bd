# tests/unit/vendor_sync/test_catalog_loader.py
import json
from pathlib import Path

import httpx
import pytest

from catalog_sync.core.config import Settings
from catalog_sync.core.exceptions import CatalogSourceError
from catalog_sync.services.vendor_sync.catalog_loader import (
    candidate_paths,
    catalog_env_var,
    load_catalog,
    locate_catalog,
)

ITEMS = [
    {"catalogId": "A-1", "category": "Frames"},
    {"catalogId": "A-2", "category": "Frames"},
    {"catalogId": "A-3", "category": "Accessories"},
]


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "acme.catalog.json"
    path.write_text(json.dumps(ITEMS), encoding="utf-8")
    return path


@pytest.fixture
def mock_http(mocker):
    """Route every httpx.AsyncClient created by the loader through a handler."""
    real_client = httpx.AsyncClient

    def install(handler):
        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return real_client(*args, **kwargs)
        mocker.patch("catalog_sync.services.vendor_sync.catalog_loader.httpx.AsyncClient", side_effect=client_factory)

    return install


def test_catalog_env_var():
    assert catalog_env_var("moscot") == "CATALOG_MOSCOT_PATH"
    assert catalog_env_var("blue-sky") == "CATALOG_BLUE_SKY_PATH"


def test_candidate_paths_order_and_dedup(tmp_path, monkeypatch, settings):
    explicit = tmp_path / "explicit.json"
    monkeypatch.setenv("CATALOG_ACME_PATH", str(explicit))

    candidates = candidate_paths("acme", explicit=str(explicit), configured="https://feeds.acme.test/catalog.json", settings=settings)

    assert candidates == [
        str(explicit.resolve()),
        "https://feeds.acme.test/catalog.json",
        str(Path("/tmp/acme.catalog.json").resolve()),
    ]


def test_candidate_paths_skip_tmp_in_production(monkeypatch):
    monkeypatch.delenv("CATALOG_ACME_PATH", raising=False)
    production = Settings(ENVIRONMENT="production", DATABASE_URL="sqlite://")

    assert candidate_paths("acme", settings=production) == []


async def test_load_catalog_from_array_file(catalog_file, settings):
    catalog = await load_catalog(str(catalog_file), settings=settings)

    assert catalog.items == ITEMS
    assert catalog.source_path == str(catalog_file)


async def test_load_catalog_from_items_object(tmp_path, settings):
    path = tmp_path / "wrapped.json"
    path.write_text(json.dumps({"items": ITEMS, "generatedAt": "2024-03-01"}), encoding="utf-8")

    catalog = await load_catalog(str(path), limit=2, settings=settings)

    assert [item["catalogId"] for item in catalog.items] == ["A-1", "A-2"]


async def test_load_catalog_rejects_oversized_sources(catalog_file):
    small = Settings(SOURCE_MAX_ITEMS=2, DATABASE_URL="sqlite://")

    with pytest.raises(CatalogSourceError, match="limit is 2"):
        await load_catalog(str(catalog_file), settings=small)


@pytest.mark.parametrize("content", ["{not json", json.dumps({"products": []}), json.dumps("text")])
async def test_load_catalog_rejects_malformed_documents(tmp_path, settings, content):
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(CatalogSourceError):
        await load_catalog(str(path), settings=settings)


async def test_load_catalog_missing_file(tmp_path, settings):
    with pytest.raises(CatalogSourceError, match="not found"):
        await load_catalog(str(tmp_path / "missing.json"), settings=settings)


async def test_load_catalog_from_url(mock_http, settings):
    def handler(request):
        assert request.headers["accept"] == "application/json"
        return httpx.Response(200, json={"items": ITEMS})

    mock_http(handler)

    catalog = await load_catalog("https://feeds.acme.test/catalog.json", settings=settings)

    assert len(catalog.items) == 3


async def test_load_catalog_url_error_status(mock_http, settings):
    mock_http(lambda request: httpx.Response(503))

    with pytest.raises(CatalogSourceError, match="HTTP 503"):
        await load_catalog("https://feeds.acme.test/catalog.json", settings=settings)


async def test_locate_catalog_uses_first_readable_candidate(tmp_path, catalog_file, monkeypatch, settings):
    monkeypatch.delenv("CATALOG_ZZ_LOCATE_PATH", raising=False)

    catalog = await locate_catalog(
        "zz-locate",
        explicit=str(tmp_path / "missing.json"),
        configured=str(catalog_file),
        settings=settings,
    )

    assert catalog.source_path == str(catalog_file.resolve())
    assert len(catalog.items) == 3


async def test_locate_catalog_reports_every_failure(tmp_path, monkeypatch, settings):
    monkeypatch.delenv("CATALOG_ZZ_NOWHERE_PATH", raising=False)

    with pytest.raises(CatalogSourceError, match="Unable to read zz-nowhere catalog"):
        await locate_catalog("zz-nowhere", explicit=str(tmp_path / "missing.json"), settings=settings)
