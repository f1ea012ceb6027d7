# auth_service/api/transport.py
"""
How refresh tokens travel between the service and its clients.

Web clients keep the token in an HttpOnly cookie scoped to ``/auth``;
native apps cannot rely on cookies, so they also get it in the JSON body and
send it back explicitly. Handlers never branch on the client type: they ask
``select_transport`` once and call ``deliver`` / ``clear``.
"""
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Request, Response

from auth_service.core.config import Settings
from auth_service.core.tokens import TokenPair

CLIENT_TYPE_HEADER = "X-Client-Type"
WEB_CLIENTS = {"web", "browser"}
NATIVE_CLIENTS = {"mobile", "ios", "android", "native"}


class RefreshTransport(ABC):
    name = "base"

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def max_age(self) -> int:
        return self.settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    def _set_cookie(self, response: Response, raw_token: str) -> None:
        response.set_cookie(
            key=self.settings.REFRESH_COOKIE_NAME,
            value=raw_token,
            max_age=self.max_age,
            path=self.settings.REFRESH_COOKIE_PATH,
            secure=self.settings.COOKIE_SECURE,
            httponly=True,
            samesite=self.settings.REFRESH_COOKIE_SAMESITE,
        )

    @abstractmethod
    def deliver(self, response: Response, pair: TokenPair) -> Optional[str]:
        """Attach the refresh token; returns the value to put in the body, if any."""

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            key=self.settings.REFRESH_COOKIE_NAME,
            path=self.settings.REFRESH_COOKIE_PATH,
            secure=self.settings.COOKIE_SECURE,
            httponly=True,
            samesite=self.settings.REFRESH_COOKIE_SAMESITE,
        )


class CookieTransport(RefreshTransport):
    name = "cookie"

    def deliver(self, response: Response, pair: TokenPair) -> Optional[str]:
        self._set_cookie(response, pair.refresh_token)
        return None


class BodyTransport(RefreshTransport):
    name = "body"

    def deliver(self, response: Response, pair: TokenPair) -> Optional[str]:
        self._set_cookie(response, pair.refresh_token)
        return pair.refresh_token


def select_transport(request: Request, settings: Settings, *, body_supplied: bool = False) -> RefreshTransport:
    # a client that sent the token in the body can read it from the body
    if body_supplied:
        return BodyTransport(settings)
    client_type = (request.headers.get(CLIENT_TYPE_HEADER) or "").strip().lower()
    if client_type in WEB_CLIENTS:
        return CookieTransport(settings)
    if client_type in NATIVE_CLIENTS:
        return BodyTransport(settings)
    if settings.DEFAULT_CLIENT_TRANSPORT == "cookie":
        return CookieTransport(settings)
    return BodyTransport(settings)


def extract_refresh_token(request: Request, settings: Settings, body_token: Optional[str]) -> Optional[str]:
    """Body wins over cookie: stale cookies may ride along with a fresher body token."""
    if body_token and body_token.strip():
        return body_token.strip()
    cookie = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    return cookie or None
