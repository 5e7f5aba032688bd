"""
Normalizer facade: raw vendor payload -> validated NormalizedProduct.

Every failure is reported through the NormalizationError family so callers
can tell a bad payload (InputValidationError) from an adapter bug
(ExecutionError / OutputValidationError).
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from catalog_sync.core.exceptions import (
    AdapterNotFoundError,
    ExecutionError,
    InputValidationError,
    OutputValidationError,
)
from catalog_sync.schemas.normalized import NormalizedProduct
from catalog_sync.services.vendor_sync.adapters.base import validation_field_errors
from catalog_sync.services.vendor_sync.registry import VendorRegistry, get_registry, normalize_slug

logger = logging.getLogger(__name__)


def normalize_vendor_item(
    slug: str,
    payload: Any,
    registry: Optional[VendorRegistry] = None,
) -> NormalizedProduct:
    """
    Normalize one raw payload with the adapter registered for ``slug``.

    Raises:
        AdapterNotFoundError: no adapter for the slug
        InputValidationError: the adapter schema rejected the payload
        ExecutionError: the adapter raised while normalizing
        OutputValidationError: the adapter produced an invalid product
    """
    registry = registry or get_registry()
    vendor_slug = normalize_slug(slug)
    adapter = registry.get_adapter(vendor_slug)
    if adapter is None:
        raise AdapterNotFoundError(f"No catalog adapter registered for vendor '{slug}'", vendor_slug)

    parsed = adapter.input_schema.safe_parse(payload)
    if not parsed.success:
        raise InputValidationError(
            f"Payload rejected by {adapter.key}",
            vendor_slug,
            field_errors=parsed.field_errors,
        ) from parsed.error

    try:
        output = adapter.normalize(parsed.data)
    except Exception as exc:
        raise ExecutionError(f"Adapter {adapter.key} failed: {exc}", vendor_slug) from exc

    try:
        return NormalizedProduct.model_validate(output)
    except ValidationError as exc:
        logger.error(f"Adapter {adapter.key} produced an invalid product: {exc}")
        raise OutputValidationError(f"Adapter {adapter.key} produced an invalid product", vendor_slug) from exc


def _prefixed(index: int, field_errors: Dict[str, List[str]]) -> Dict[str, List[str]]:
    prefixed = {}
    for path, messages in field_errors.items():
        key = f"{index}.{path}" if path else str(index)
        prefixed.setdefault(key, []).extend(messages)
    return prefixed


def normalize_batch(
    slug: str,
    items: List[Any],
    registry: Optional[VendorRegistry] = None,
) -> List[NormalizedProduct]:
    """
    Normalize a batch of payloads.

    Input validation problems are collected across the whole batch and raised
    once, keyed by item index ("0.catalogId"). Other errors stop at the first
    failing item.
    """
    registry = registry or get_registry()
    vendor_slug = normalize_slug(slug)
    if registry.get_adapter(vendor_slug) is None:
        raise AdapterNotFoundError(f"No catalog adapter registered for vendor '{slug}'", vendor_slug)

    products: List[NormalizedProduct] = []
    field_errors: Dict[str, List[str]] = {}
    first_error: Optional[InputValidationError] = None

    for index, payload in enumerate(items):
        try:
            products.append(normalize_vendor_item(vendor_slug, payload, registry))
        except InputValidationError as exc:
            first_error = first_error or exc
            for key, messages in _prefixed(index, exc.field_errors).items():
                field_errors.setdefault(key, []).extend(messages)

    if field_errors:
        raise InputValidationError(
            f"{len({key.split('.')[0] for key in field_errors})} of {len(items)} items failed validation",
            vendor_slug,
            field_errors=field_errors,
        ) from first_error

    logger.debug(f"Normalized {len(products)} {vendor_slug} items")
    return products
