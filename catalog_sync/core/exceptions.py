from typing import Dict, List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class VendorSyncError(BaseServiceError):
    """Base exception for vendor catalog sync errors."""
    pass


class DuplicateVendorError(VendorSyncError):
    """Raised when an adapter is registered twice for the same vendor slug."""
    pass


class CatalogSourceError(VendorSyncError):
    """Raised when a catalog source cannot be read or parsed."""
    pass


# Normalization -------------------------------------------------------------

class NormalizationError(VendorSyncError):
    """Base exception for errors raised while normalizing a vendor payload."""

    def __init__(self, message: str, slug: Optional[str] = None):
        super().__init__(message)
        self.slug = slug


class AdapterNotFoundError(NormalizationError):
    """Raised when no adapter is registered for a vendor slug."""
    pass


class InputValidationError(NormalizationError):
    """Raised when a raw payload is rejected by the adapter input schema."""

    def __init__(
        self,
        message: str,
        slug: Optional[str] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
    ):
        super().__init__(message, slug)
        self.field_errors = field_errors or {}


class ExecutionError(NormalizationError):
    """Raised when an adapter fails while normalizing a payload."""
    pass


class OutputValidationError(NormalizationError):
    """Raised when an adapter produces a malformed normalized product."""
    pass


# Persistence ---------------------------------------------------------------

class ApplyError(VendorSyncError):
    """Raised when a diff cannot be persisted."""
    pass


class ConcurrencyConflictError(ApplyError):
    """Raised when transactional retries are exhausted on conflicting writers."""
    pass


class RunStateError(VendorSyncError):
    """Raised on an illegal run status transition."""
    pass


# HTTP facing ---------------------------------------------------------------

class ApiError(BaseServiceError):
    """Error rendered as a JSON error envelope at the HTTP boundary."""

    status_code = 500
    code = "server_error"

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        code: Optional[str] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
    ):
        super().__init__(detail or self.code)
        self.detail = detail
        if code:
            self.code = code
        self.field_errors = field_errors


class InvalidRequestError(ApiError):
    """Raised for malformed requests (bad dates, missing body fields, ...)."""
    status_code = 400
    code = "invalid_request"


class MissingVendorError(ApiError):
    """Raised when a vendor key is supplied with an empty value."""
    status_code = 400
    code = "missing_vendor"


class UnauthenticatedError(ApiError):
    """Raised when a request carries no valid service token."""
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(ApiError):
    """Raised when a service token lacks the required scope."""
    status_code = 403
    code = "forbidden"


class NotFoundError(ApiError):
    """Raised when a requested resource does not exist."""
    status_code = 404
    code = "not_found"


class SlugConflictError(ApiError):
    """Raised when onboarding a vendor with a slug already in use."""
    status_code = 409
    code = "slug_conflict"


class ReadFailedError(ApiError):
    """Raised when an observability query fails."""
    status_code = 500

    def __init__(self, resource: str, detail: Optional[str] = None):
        super().__init__(detail, code=f"failed_to_load_{resource}")
        self.resource = resource
