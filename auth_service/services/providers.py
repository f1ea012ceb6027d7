# auth_service/services/providers.py
"""
Identity provider verification.

Each verifier turns a provider-issued credential into a normalised
``Profile``. Verifiers do network I/O only: one HTTP round trip (or two for
Facebook) bounded by ``PROVIDER_TIMEOUT_SECONDS``, no retries. Nothing here
touches the database.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import requests
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from jose import JWTError, jwt

from auth_service.core.config import Settings
from auth_service.core.errors import InvalidCredential, MissingEmail, ProviderUnavailable, ValidationError
from auth_service.core.logging import get_logger
from auth_service.core.metrics import PROVIDER_FAILURES
from auth_service.crud.user import normalize_email
from auth_service.models.account_provider import Provider

log = get_logger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class Profile:
    provider_user_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email_verified: Optional[bool] = None


@dataclass(frozen=True)
class ClientHints:
    """Data the client captured itself (Apple only sends it on the first sign-in)."""

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _email(value: Any) -> Optional[str]:
    return normalize_email(value) or None


def _as_bool(value: Any) -> Optional[bool]:
    # Apple sends "true"/"false" strings, Google real booleans
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class ProviderVerifier(ABC):
    provider: Provider

    def __init__(self, settings: Settings, session: requests.Session):
        self.settings = settings
        self.session = session

    @property
    def timeout(self) -> float:
        return self.settings.PROVIDER_TIMEOUT_SECONDS

    @abstractmethod
    def verify(self, credential: str, hints: Optional[ClientHints] = None) -> Profile:
        ...

    def _invalid(self, why: str) -> InvalidCredential:
        PROVIDER_FAILURES.labels(provider=self.provider.value, kind="invalid").inc()
        log.info("provider_credential_rejected", provider=self.provider.value, why=why)
        return InvalidCredential()

    def _unavailable(self, why: str) -> ProviderUnavailable:
        PROVIDER_FAILURES.labels(provider=self.provider.value, kind="unavailable").inc()
        log.warning("provider_unavailable", provider=self.provider.value, why=why)
        return ProviderUnavailable()


class _TimeoutRequest(google_requests.Request):
    """google-auth transport that always applies our timeout."""

    def __init__(self, session: requests.Session, timeout: float):
        super().__init__(session=session)
        self._timeout = timeout

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url, method=method, body=body, headers=headers, timeout=timeout or self._timeout, **kwargs
        )


class GoogleVerifier(ProviderVerifier):
    provider = Provider.google

    def verify(self, credential: str, hints: Optional[ClientHints] = None) -> Profile:
        audiences = self.settings.google_client_ids
        try:
            claims = google_id_token.verify_oauth2_token(
                credential,
                _TimeoutRequest(self.session, self.timeout),
                audience=audiences,
            )
        except google_exceptions.TransportError as exc:
            raise self._unavailable(type(exc).__name__)
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            raise self._invalid(type(exc).__name__)

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise self._invalid("issuer")
        if claims.get("aud") not in audiences:
            raise self._invalid("audience")
        sub = _clean(claims.get("sub"))
        if not sub:
            raise self._invalid("sub")

        return Profile(
            provider_user_id=sub,
            email=_email(claims.get("email")),
            first_name=_clean(claims.get("given_name")),
            last_name=_clean(claims.get("family_name")),
            email_verified=_as_bool(claims.get("email_verified")),
        )


class AppleVerifier(ProviderVerifier):
    provider = Provider.apple
    # seconds between JWKS downloads triggered by unknown kids
    KEYS_REFETCH_INTERVAL = 60.0

    def __init__(self, settings: Settings, session: requests.Session):
        super().__init__(settings, session)
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._fetched_at: Optional[float] = None

    def _fetch_keys(self) -> None:
        try:
            resp = self.session.get(self.settings.APPLE_KEYS_URL, timeout=self.timeout)
        except requests.RequestException as exc:
            raise self._unavailable(type(exc).__name__)
        if resp.status_code != 200:
            raise self._unavailable(f"jwks_status_{resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            raise self._unavailable("jwks_body")
        if not isinstance(body, dict):
            raise self._unavailable("jwks_body")
        keys = body.get("keys") or []
        self._keys = {k["kid"]: k for k in keys if isinstance(k, dict) and k.get("kid")}
        self._fetched_at = time.monotonic()

    def _may_refetch(self) -> bool:
        if self._fetched_at is None:
            return True
        return time.monotonic() - self._fetched_at >= self.KEYS_REFETCH_INTERVAL

    def _signing_key(self, kid: str) -> Dict[str, Any]:
        # Apple rotates keys; refetch when the kid is unknown, at most once per interval
        if kid not in self._keys and self._may_refetch():
            self._fetch_keys()
        key = self._keys.get(kid)
        if key is None:
            raise self._invalid("unknown_kid")
        return key

    def verify(self, credential: str, hints: Optional[ClientHints] = None) -> Profile:
        try:
            header = jwt.get_unverified_header(credential)
        except JWTError:
            raise self._invalid("header")
        kid = header.get("kid")
        if not kid:
            raise self._invalid("kid")

        key = self._signing_key(kid)
        try:
            claims = jwt.decode(
                credential,
                key,
                algorithms=["RS256"],
                issuer=self.settings.APPLE_ISSUER,
                options={"verify_aud": False, "require_exp": True, "require_iss": True, "require_sub": True},
            )
        except JWTError as exc:
            raise self._invalid(type(exc).__name__)

        # python-jose only matches a single audience
        if claims.get("aud") not in self.settings.apple_client_ids:
            raise self._invalid("audience")

        hints = hints or ClientHints()
        email = _email(claims.get("email"))
        email_verified = _as_bool(claims.get("email_verified"))
        if not email:
            # the client-supplied address is never proof of ownership
            email = _email(hints.email)
            email_verified = False
        if not email:
            log.info("provider_missing_email", provider=self.provider.value)
            raise MissingEmail()

        return Profile(
            provider_user_id=str(claims["sub"]),
            email=email,
            first_name=_clean(hints.first_name),
            last_name=_clean(hints.last_name),
            email_verified=email_verified,
        )


class FacebookVerifier(ProviderVerifier):
    provider = Provider.facebook

    @property
    def graph_url(self) -> str:
        return self.settings.FACEBOOK_GRAPH_URL.rstrip("/")

    def _get(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise self._unavailable(type(exc).__name__)
        if resp.status_code >= 500:
            raise self._unavailable(f"status_{resp.status_code}")
        if resp.status_code >= 400:
            raise self._invalid(f"status_{resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            raise self._unavailable("body")
        if not isinstance(body, dict):
            raise self._unavailable("body")
        return body

    def _appsecret_proof(self, token: str) -> str:
        return hmac.new(
            self.settings.FACEBOOK_APP_SECRET.encode("utf-8"), token.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def _introspect(self, token: str) -> str:
        app_token = f"{self.settings.FACEBOOK_APP_ID}|{self.settings.FACEBOOK_APP_SECRET}"
        body = self._get(f"{self.graph_url}/debug_token", {"input_token": token, "access_token": app_token})
        data = body.get("data")
        if not isinstance(data, dict):
            raise self._unavailable("body")
        if data.get("is_valid") is not True:
            raise self._invalid("is_valid")
        # a valid token minted for another app must not log anyone in here
        if str(data.get("app_id")) != self.settings.FACEBOOK_APP_ID:
            raise self._invalid("app_id")
        expires_at = int(data.get("expires_at") or 0)
        if expires_at and expires_at < time.time():
            raise self._invalid("expired")
        user_id = _clean(data.get("user_id"))
        if not user_id:
            raise self._invalid("user_id")
        return user_id

    def verify(self, credential: str, hints: Optional[ClientHints] = None) -> Profile:
        user_id = self._introspect(credential)
        me = self._get(
            f"{self.graph_url}/{self.settings.FACEBOOK_GRAPH_VERSION}/me",
            {
                "fields": "id,email,first_name,last_name",
                "access_token": credential,
                "appsecret_proof": self._appsecret_proof(credential),
            },
        )
        if str(me.get("id")) != user_id:
            raise self._invalid("id_mismatch")

        email = _email(me.get("email"))
        if not email:
            log.info("provider_missing_email", provider=self.provider.value)
            raise MissingEmail()
        return Profile(
            provider_user_id=user_id,
            email=email,
            first_name=_clean(me.get("first_name")),
            last_name=_clean(me.get("last_name")),
        )


class ProviderRegistry:
    def __init__(self, verifiers: Optional[Dict[Provider, ProviderVerifier]] = None):
        self._verifiers: Dict[Provider, ProviderVerifier] = dict(verifiers or {})

    def register(self, provider: Provider, verifier: ProviderVerifier) -> None:
        self._verifiers[provider] = verifier

    def enabled(self) -> list:
        return sorted(p.value for p in self._verifiers)

    def get(self, provider: Provider) -> ProviderVerifier:
        verifier = self._verifiers.get(provider)
        if verifier is None:
            raise ValidationError(f"Provider '{provider.value}' is not enabled.")
        return verifier

    def verify(self, provider: Provider, credential: str, hints: Optional[ClientHints] = None) -> Profile:
        profile = self.get(provider).verify(credential, hints)
        if hints and not (profile.first_name or profile.last_name):
            profile = replace(profile, first_name=_clean(hints.first_name), last_name=_clean(hints.last_name))
        return profile


def build_providers(settings: Settings, session: Optional[requests.Session] = None) -> ProviderRegistry:
    """Register a verifier for every provider that has credentials configured."""
    session = session or requests.Session()
    registry = ProviderRegistry()
    if settings.google_client_ids:
        registry.register(Provider.google, GoogleVerifier(settings, session))
    if settings.apple_client_ids:
        registry.register(Provider.apple, AppleVerifier(settings, session))
    if settings.facebook_enabled:
        registry.register(Provider.facebook, FacebookVerifier(settings, session))
    log.info("providers_configured", providers=registry.enabled())
    return registry
