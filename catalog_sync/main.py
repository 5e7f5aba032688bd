# catalog_sync/main.py

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import catalog_sync.core.logging_config  # noqa: F401  configures logging on import
from catalog_sync import __version__
from catalog_sync.core.config import get_settings
from catalog_sync.core.exceptions import (
    AdapterNotFoundError,
    ApiError,
    ApplyError,
    CatalogSourceError,
    ConcurrencyConflictError,
    ExecutionError,
    InputValidationError,
    OutputValidationError,
)
from catalog_sync.routes import health, vendor_sync
from catalog_sync.services.vendor_sync.registry import get_registry

logger = logging.getLogger(__name__)

HTTP_STATUS_CODES = {
    400: "invalid_request",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
}


def error_response(
    status_code: int,
    code: str,
    detail: Optional[str] = None,
    field_errors: Optional[Dict[str, List[str]]] = None,
) -> JSONResponse:
    """JSON error envelope: {ok: false, error, detail?, fieldErrors?}"""
    content = {"ok": False, "error": code}
    if detail:
        content["detail"] = detail
    if field_errors:
        content["fieldErrors"] = field_errors
    return JSONResponse(status_code=status_code, content=content)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    registry = get_registry()
    logger.info(
        f"Vendor catalog sync {__version__} starting ({settings.ENVIRONMENT}); "
        f"registered vendors: {', '.join(registry.slugs())}"
    )
    if not settings.SERVICE_TOKENS:
        logger.warning("SERVICE_TOKENS is empty: requests are not authenticated")
    yield


app = FastAPI(
    title="Vendor Catalog Sync",
    version=__version__,
    lifespan=lifespan
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return error_response(exc.status_code, exc.code, exc.detail, exc.field_errors)


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError):
    return error_response(400, "invalid_request", str(exc), exc.field_errors)


@app.exception_handler(AdapterNotFoundError)
async def adapter_not_found_handler(request: Request, exc: AdapterNotFoundError):
    return error_response(400, "invalid_request", str(exc))


@app.exception_handler(CatalogSourceError)
async def catalog_source_handler(request: Request, exc: CatalogSourceError):
    return error_response(400, "invalid_request", str(exc))


@app.exception_handler(ExecutionError)
@app.exception_handler(OutputValidationError)
async def execution_error_handler(request: Request, exc: Exception):
    logger.error(f"Normalization failed on {request.url.path}: {exc}", exc_info=exc)
    return error_response(500, "execution_error", str(exc))


@app.exception_handler(ConcurrencyConflictError)
async def concurrency_conflict_handler(request: Request, exc: ConcurrencyConflictError):
    return error_response(409, "retry_later", str(exc))


@app.exception_handler(ApplyError)
async def apply_error_handler(request: Request, exc: ApplyError):
    return error_response(500, "failed_to_apply", str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    field_errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        field_errors.setdefault(path, []).append(error.get("msg", "Invalid value"))
    return error_response(400, "invalid_request", "Request validation failed", field_errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_STATUS_CODES.get(exc.status_code, "server_error" if exc.status_code >= 500 else "http_error")
    detail = exc.detail if isinstance(exc.detail, str) else None
    return error_response(exc.status_code, code, detail)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(500, "server_error")


app.include_router(vendor_sync.router)
app.include_router(health.router)  # Health check should be accessible without auth

