"""
Service token authentication for the vendor sync API.

Callers send ``Authorization: Bearer <token>``; each configured token carries
a list of ``catalog:sync:*`` scopes. With no tokens configured (local
development) every request is accepted with all scopes.
"""

import secrets
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import SyncScope
from catalog_sync.core.exceptions import ForbiddenError, UnauthenticatedError

DEFAULT_ACTOR = "service"

# Missing or non-bearer credentials reach get_service_principal as None
bearer_scheme = HTTPBearer(auto_error=False)

# A scope grants itself and everything listed here
_IMPLIED_SCOPES = {
    SyncScope.ADMIN.value: {SyncScope.WRITE.value, SyncScope.READ.value},
    SyncScope.WRITE.value: {SyncScope.READ.value},
}


@dataclass(frozen=True)
class ServicePrincipal:
    actor: str
    scopes: FrozenSet[str] = field(default_factory=frozenset)

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


def expand_scopes(scopes) -> FrozenSet[str]:
    expanded = set()
    for scope in scopes or []:
        expanded.add(scope)
        expanded.update(_IMPLIED_SCOPES.get(scope, set()))
    return frozenset(expanded)


def _actor_from(request: Request) -> str:
    actor = (request.headers.get("x-actor") or "").strip()
    return actor or DEFAULT_ACTOR


def get_service_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> ServicePrincipal:
    """
    Resolve the calling service from its bearer token.
    """
    actor = _actor_from(request)
    if not settings.SERVICE_TOKENS:
        return ServicePrincipal(actor=actor, scopes=expand_scopes([s.value for s in SyncScope]))

    token = credentials.credentials.strip() if credentials else ""
    if not token:
        raise UnauthenticatedError("Bearer service token required")

    for known_token, scopes in settings.SERVICE_TOKENS.items():
        if secrets.compare_digest(token.encode("utf8"), known_token.encode("utf8")):
            return ServicePrincipal(actor=actor, scopes=expand_scopes(scopes))

    raise UnauthenticatedError("Unknown service token")


def require_scope(scope: SyncScope):
    """
    Dependency factory requiring a scope on the calling token.
    Usage: principal: ServicePrincipal = Depends(require_scope(SyncScope.WRITE))
    """
    def _check(principal: ServicePrincipal = Depends(get_service_principal)) -> ServicePrincipal:
        if not principal.has_scope(scope.value):
            raise ForbiddenError(f"{scope.value} scope required")
        return principal

    return _check
