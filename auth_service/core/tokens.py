# auth_service/core/tokens.py
from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from auth_service.core.config import Settings
from auth_service.core.errors import AccessFailure, AccessTokenError

if TYPE_CHECKING:
    from auth_service.services.ledger import RefreshTokenLedger


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hash_refresh_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class AccessTokenClaims:
    user_id: int
    email: str
    iss: str
    aud: str
    exp: int


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_at: datetime


class TokenIssuer:
    """Mints access JWTs and opaque refresh secrets."""

    def __init__(self, settings: Settings, ledger: "RefreshTokenLedger"):
        self.settings = settings
        self.ledger = ledger

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def sign_access(self, user_id: int, email: str, *, now: Optional[datetime] = None) -> str:
        issued = now or utcnow()
        payload: Dict[str, Any] = {
            "type": "access",
            "sub": str(user_id),
            "email": email,
            "iss": self.settings.JWT_ISSUER,
            "aud": self.settings.JWT_AUDIENCE,
            "jti": uuid.uuid4().hex,
            "iat": int(issued.timestamp()),
            "exp": int((issued + self.access_ttl).timestamp()),
        }
        return jwt.encode(payload, self.settings.SECRET_KEY, algorithm=self.settings.ALGORITHM)

    def verify_access(self, token: str) -> AccessTokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.settings.SECRET_KEY,
                algorithms=[self.settings.ALGORITHM],
                audience=self.settings.JWT_AUDIENCE,
                issuer=self.settings.JWT_ISSUER,
                options={"require_exp": True, "require_iss": True, "require_aud": True, "require_sub": True},
            )
        except JWTError:
            raise AccessTokenError(AccessFailure.INVALID_OR_EXPIRED)
        if not isinstance(payload, dict) or payload.get("type") != "access":
            raise AccessTokenError(AccessFailure.INVALID_OR_EXPIRED)
        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise AccessTokenError(AccessFailure.INVALID_OR_EXPIRED)
        return AccessTokenClaims(
            user_id=user_id,
            email=str(payload.get("email") or ""),
            iss=payload["iss"],
            aud=payload["aud"],
            exp=int(payload["exp"]),
        )

    def sign_refresh(self) -> str:
        # opaque: nothing about the user is recoverable from the value itself
        return secrets.token_urlsafe(48)

    def issue_pair(
        self,
        db: Session,
        user_id: int,
        email: str,
        *,
        family_id: Optional[str] = None,
        commit: bool = True,
    ) -> TokenPair:
        now = utcnow()
        access = self.sign_access(user_id, email, now=now)
        raw_refresh = self.sign_refresh()
        row = self.ledger.persist(
            db,
            user_id=user_id,
            raw_token=raw_refresh,
            expires_at=now + self.refresh_ttl,
            family_id=family_id,
            commit=commit,
        )
        return TokenPair(
            access_token=access,
            refresh_token=raw_refresh,
            access_expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_at=as_utc(row.expires_at),
        )
