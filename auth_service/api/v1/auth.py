# auth_service/api/v1/auth.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy.orm import Session

from auth_service.api.deps import Principal, get_current_principal, get_current_user, get_db, get_services
from auth_service.api.transport import RefreshTransport, extract_refresh_token, select_transport
from auth_service.core.errors import RefreshFailure, RefreshTokenError
from auth_service.core.logging import get_logger, set_user_id
from auth_service.core.tokens import TokenPair
from auth_service.models.user import User
from auth_service.schemas.auth import (
    AuthResponse,
    LogoutAllResponse,
    MessageResponse,
    RefreshRequest,
    SocialLoginRequest,
)
from auth_service.schemas.user import UserOut
from auth_service.services.container import Services
from auth_service.services.providers import ClientHints

log = get_logger(__name__)

router = APIRouter()


# ---------- helpers ----------
def _auth_response(response: Response, transport: RefreshTransport, pair: TokenPair, user: User) -> AuthResponse:
    return AuthResponse(
        access_token=pair.access_token,
        expires_in=pair.access_expires_in,
        refresh_token=transport.deliver(response, pair),
        user=UserOut.model_validate(user),
    )


# ---------- endpoints ----------
@router.post("/social-login", response_model=AuthResponse, response_model_exclude_none=True)
def social_login(
    payload: SocialLoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    hints = ClientHints(email=payload.email, first_name=payload.first_name, last_name=payload.last_name)
    profile = services.providers.verify(payload.provider, payload.credential, hints)
    user = services.resolver.resolve(db, payload.provider, profile)
    set_user_id(str(user.id))

    pair = services.issuer.issue_pair(db, user.id, user.email)
    transport = select_transport(request, services.settings)
    log.info("login_succeeded", provider=payload.provider.value, user_id=user.id, transport=transport.name)
    return _auth_response(response, transport, pair, user)


@router.post("/refresh", response_model=AuthResponse, response_model_exclude_none=True)
def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = Body(default=None),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    body_token = body.refresh_token if body else None
    raw = extract_refresh_token(request, services.settings, body_token)
    if not raw:
        log.info("refresh_token_missing")
        raise RefreshTokenError(RefreshFailure.NOT_FOUND)

    pair, user = services.ledger.rotate(db, raw, services.issuer)
    set_user_id(str(user.id))
    transport = select_transport(request, services.settings, body_supplied=bool(body_token))
    return _auth_response(response, transport, pair, user)


async def _logout_body_token(request: Request) -> Optional[str]:
    """Logout never rejects its input: an unreadable body just means no body token."""
    try:
        data = await request.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    token = data.get("refreshToken", data.get("refresh_token"))
    return token if isinstance(token, str) else None


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    body_token: Optional[str] = Depends(_logout_body_token),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    # always 200: the caller learns nothing about the token it sent
    raw = extract_refresh_token(request, services.settings, body_token)
    if raw:
        services.ledger.revoke(db, raw)
    select_transport(request, services.settings).clear(response)
    return MessageResponse(message="Logged out.")


@router.post("/logout-all", response_model=LogoutAllResponse)
def logout_all(
    request: Request,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    revoked = services.ledger.revoke_all(db, principal.user_id)
    select_transport(request, services.settings).clear(response)
    return LogoutAllResponse(revoked=revoked)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return UserOut.model_validate(user)
