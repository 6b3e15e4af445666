from __future__ import annotations

import secrets

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import (
    HTTPAuthorizationCredentials,
    HTTPBasic,
    HTTPBasicCredentials,
    HTTPBearer,
)

from enrollment_api.config import settings


_basic_scheme = HTTPBasic()
_bearer_scheme = HTTPBearer(auto_error=False, scheme_name="BearerAuth")


def _unauthorized(scheme: str | None = None, detail: str = "Unauthorized") -> HTTPException:
    headers = {"WWW-Authenticate": scheme} if scheme else None
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=headers)


def _matches(given: str | None, expected: str) -> bool:
    return secrets.compare_digest((given or "").strip(), expected)


def require_basic_auth(credentials: HTTPBasicCredentials = Depends(_basic_scheme)) -> None:
    """Protect the API docs with HTTP Basic credentials."""

    username_ok = _matches(credentials.username, settings.api_basic_username)
    password_ok = _matches(credentials.password, settings.api_basic_password)
    if not (username_ok and password_ok):
        raise _unauthorized("Basic")


def verify_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer_scheme),
) -> None:
    """Enrollment API calls carry the configured Bearer token."""

    if credentials is None or not credentials.credentials.strip():
        raise _unauthorized("Bearer")
    if not _matches(credentials.credentials, settings.api_bearer_token):
        raise _unauthorized("Bearer")


def verify_webhook_token(
    asaas_access_token: str | None = Header(default=None, alias="asaas-access-token"),
) -> None:
    """Check the shared secret Asaas sends with every webhook, when one is configured."""

    expected = settings.asaas_webhook_token
    if not expected:
        return
    if not asaas_access_token or not _matches(asaas_access_token, expected):
        raise _unauthorized(detail="Invalid webhook token")
