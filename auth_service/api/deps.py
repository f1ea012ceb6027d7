# auth_service/api/deps.py
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from auth_service.core.errors import AccessFailure, AccessTokenError, AuthenticationError, NotFoundError
from auth_service.core.logging import set_user_id
from auth_service.crud.user import user_crud
from auth_service.db.session import get_db
from auth_service.models.user import User
from auth_service.services.container import Services

__all__ = [
    "Principal",
    "get_db",
    "get_services",
    "get_bearer_token",
    "get_current_principal",
    "get_optional_principal",
    "get_current_user",
    "require_cron_secret",
]


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: str


def get_services(request: Request) -> Services:
    return request.app.state.services


# ----------------------------------------------------------------------
# Reads the Bearer token from the Authorization header
# ----------------------------------------------------------------------
def get_bearer_token(request: Request) -> str:
    authorization = request.headers.get("Authorization")
    if not authorization:
        raise AccessTokenError(AccessFailure.MISSING_HEADER)
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AccessTokenError(AccessFailure.MALFORMED_HEADER)
    return parts[1]


def get_current_principal(
    request: Request,
    token: str = Depends(get_bearer_token),
    services: Services = Depends(get_services),
) -> Principal:
    claims = services.issuer.verify_access(token)
    principal = Principal(user_id=claims.user_id, email=claims.email)
    request.state.principal = principal
    set_user_id(str(principal.user_id))
    return principal


def get_optional_principal(request: Request, services: Services = Depends(get_services)) -> Optional[Principal]:
    """Same as get_current_principal, but anonymous callers get None instead of a 401."""
    try:
        token = get_bearer_token(request)
        return get_current_principal(request, token, services)
    except AuthenticationError:
        request.state.principal = None
        return None


def get_current_user(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> User:
    user = user_crud.get(db, principal.user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


# ----------------------------------------------------------------------
# Shared secret for scheduler-triggered jobs
# ----------------------------------------------------------------------
def require_cron_secret(
    services: Services = Depends(get_services),
    x_cron_secret: Optional[str] = Header(None, alias="X-Cron-Secret"),
) -> None:
    expected = services.settings.CRON_SECRET
    if not expected:
        raise HTTPException(status_code=503, detail="Cron jobs are not configured")
    if not x_cron_secret:
        raise HTTPException(status_code=401, detail="Missing X-Cron-Secret header")
    if not hmac.compare_digest(x_cron_secret.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Invalid cron secret")
